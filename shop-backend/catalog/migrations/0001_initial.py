from django.db import migrations, models
import django.db.models.deletion
import django.db.models.functions.text


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('sku', models.CharField(max_length=64)),
                ('name', models.CharField(max_length=200)),
                ('slug', models.SlugField(blank=True, max_length=220)),
                ('brand', models.CharField(blank=True, default='', max_length=120)),
                ('category', models.CharField(blank=True, db_index=True, max_length=120)),
                ('description', models.TextField(blank=True, default='')),
                ('image_url', models.URLField(blank=True, default='')),
                ('price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('old_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('stock_current', models.IntegerField(default=0)),
                ('stock_reserved', models.IntegerField(default=0)),
                ('stock_min_level', models.IntegerField(default=5)),
                ('stock_max_level', models.IntegerField(default=100)),
                ('reorder_point', models.IntegerField(default=10)),
                ('last_restocked_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('INACTIVE', 'Inactive')], db_index=True, default='ACTIVE', max_length=10)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='products', to='tenants.tenant')),
            ],
            options={
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['tenant', 'status'], name='product_tenant_status_idx'),
                    models.Index(fields=['tenant', 'category', 'status'], name='product_tenant_cat_idx'),
                    models.Index(fields=['tenant', 'stock_current'], name='product_tenant_stock_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(django.db.models.functions.text.Lower('sku'), models.F('tenant'), name='uniq_product_sku_ci_per_tenant'),
                    models.CheckConstraint(condition=models.Q(('price__gte', 0)), name='product_price_non_negative'),
                    models.CheckConstraint(condition=models.Q(('stock_reserved__gte', 0)), name='product_reserved_non_negative'),
                    models.CheckConstraint(condition=models.Q(('stock_reserved__lte', models.F('stock_current'))), name='product_reserved_lte_current'),
                ],
            },
        ),
    ]
