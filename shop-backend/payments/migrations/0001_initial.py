from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('orders', '0001_initial'),
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('currency', models.CharField(default='CLP', max_length=3)),
                ('method', models.CharField(choices=[('credit_card', 'Credit card'), ('debit_card', 'Debit card'), ('transfer', 'Bank transfer'), ('webpay', 'Webpay'), ('mercadopago', 'MercadoPago')], max_length=16)),
                ('gateway', models.CharField(choices=[('webpay', 'Webpay'), ('mercadopago', 'MercadoPago'), ('flow', 'Flow'), ('manual', 'Manual')], max_length=16)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed'), ('refunded', 'Refunded'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=16)),
                ('transaction_id', models.CharField(max_length=40, unique=True)),
                ('gateway_transaction_id', models.CharField(blank=True, default='', max_length=64)),
                ('authorization_code', models.CharField(blank=True, default='', max_length=32)),
                ('card_brand', models.CharField(blank=True, default='', max_length=20)),
                ('card_last4', models.CharField(blank=True, default='', max_length=4)),
                ('gateway_response', models.JSONField(blank=True, default=dict)),
                ('error_code', models.CharField(blank=True, default='', max_length=40)),
                ('error_message', models.CharField(blank=True, default='', max_length=255)),
                ('refund_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('refund_reason', models.CharField(blank=True, default='', max_length=255)),
                ('refund_transaction_id', models.CharField(blank=True, default='', max_length=40)),
                ('refunded_at', models.DateTimeField(blank=True, null=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('failed_at', models.DateTimeField(blank=True, null=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='orders.order')),
                ('refunded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='tenants.tenant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['tenant', 'user', 'created_at'], name='payment_tenant_user_idx'),
                    models.Index(fields=['status', 'created_at'], name='payment_status_created_idx'),
                ],
            },
        ),
    ]
