from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


TIER_CHOICES = [('bronze', 'Bronze'), ('silver', 'Silver'), ('gold', 'Gold'), ('platinum', 'Platinum')]

REWARD_TYPE_CHOICES = [
    ('discount_percentage', 'Percentage discount'), ('discount_fixed', 'Fixed discount'),
    ('free_shipping', 'Free shipping'), ('product', 'Product'), ('coupon', 'Coupon'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('catalog', '0001_initial'),
        ('orders', '0001_initial'),
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='LoyaltyAccount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('points', models.IntegerField(default=0)),
                ('lifetime_points', models.IntegerField(default=0)),
                ('redeemed_points', models.IntegerField(default=0)),
                ('tier', models.CharField(choices=TIER_CHOICES, default='bronze', max_length=16)),
                ('tier_updated_at', models.DateTimeField(blank=True, null=True)),
                ('referral_code', models.CharField(max_length=16, unique=True)),
                ('referral_count', models.IntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('last_activity_at', models.DateTimeField(blank=True, null=True)),
                ('referred_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='loyalty_accounts', to='tenants.tenant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='loyalty_accounts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['tenant', 'tier'], name='loyalty_acct_tier_idx'),
                    models.Index(fields=['tenant', 'lifetime_points'], name='loyalty_acct_lifetime_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('points__gte', 0)), name='loyalty_points_non_negative'),
                ],
                'unique_together': {('tenant', 'user')},
            },
        ),
        migrations.CreateModel(
            name='PointsBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.IntegerField()),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='batches', to='loyalty.loyaltyaccount')),
            ],
            options={
                'ordering': ['expires_at', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Reward',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=100)),
                ('slug', models.SlugField(blank=True, max_length=120)),
                ('description', models.CharField(blank=True, default='', max_length=500)),
                ('image_url', models.URLField(blank=True, default='')),
                ('points_cost', models.PositiveIntegerField()),
                ('type', models.CharField(choices=REWARD_TYPE_CHOICES, max_length=24)),
                ('value', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12)),
                ('min_order_amount', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12)),
                ('max_discount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('valid_categories', models.JSONField(blank=True, default=list)),
                ('excluded_categories', models.JSONField(blank=True, default=list)),
                ('min_tier', models.CharField(choices=TIER_CHOICES, default='bronze', max_length=16)),
                ('max_uses_per_user', models.PositiveIntegerField(blank=True, null=True)),
                ('max_uses_total', models.PositiveIntegerField(blank=True, null=True)),
                ('stock', models.PositiveIntegerField(blank=True, help_text='Empty means unlimited.', null=True)),
                ('redeemed_count', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive')], default='active', max_length=10)),
                ('is_featured', models.BooleanField(default=False)),
                ('start_date', models.DateTimeField(blank=True, null=True)),
                ('end_date', models.DateTimeField(blank=True, null=True)),
                ('display_order', models.IntegerField(default=0)),
                ('terms', models.TextField(blank=True, default='')),
                ('product', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='catalog.product')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='rewards', to='tenants.tenant')),
            ],
            options={
                'ordering': ['display_order', 'points_cost', 'id'],
                'indexes': [models.Index(fields=['tenant', 'status', 'display_order'], name='reward_tenant_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='PointsTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('earn', 'Earn'), ('redeem', 'Redeem'), ('expire', 'Expire'), ('adjustment', 'Adjustment'), ('bonus', 'Bonus'), ('referral', 'Referral')], max_length=16)),
                ('points', models.IntegerField()),
                ('base_points', models.IntegerField(blank=True, null=True)),
                ('multiplier', models.DecimalField(decimal_places=2, default=Decimal('1'), max_digits=4)),
                ('balance_after', models.IntegerField()),
                ('reason', models.CharField(max_length=255)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transactions', to='loyalty.loyaltyaccount')),
                ('adjusted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='orders.order')),
                ('reward', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='loyalty.reward')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['account', 'created_at'], name='points_txn_account_idx'),
                    models.Index(fields=['type', 'created_at'], name='points_txn_type_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RedeemedReward',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reward_name', models.CharField(max_length=100)),
                ('coupon_code', models.CharField(max_length=20, unique=True)),
                ('type', models.CharField(choices=REWARD_TYPE_CHOICES, max_length=24)),
                ('value', models.DecimalField(decimal_places=2, max_digits=12)),
                ('points_spent', models.PositiveIntegerField(default=0)),
                ('min_order_amount', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12)),
                ('max_discount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('valid_categories', models.JSONField(blank=True, default=list)),
                ('excluded_categories', models.JSONField(blank=True, default=list)),
                ('status', models.CharField(choices=[('active', 'Active'), ('used', 'Used'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], db_index=True, default='active', max_length=10)),
                ('used_at', models.DateTimeField(blank=True, null=True)),
                ('discount_applied', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('reward', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='redemptions', to='loyalty.reward')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to='tenants.tenant')),
                ('used_in_order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='orders.order')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='redeemed_rewards', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [models.Index(fields=['user', 'status'], name='redeemed_user_status_idx')],
            },
        ),
    ]
