# Generated migration file for initial database schema

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Account',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('business_type', models.CharField(choices=[('homeowner', 'Homeowner'), ('personal', 'Personal'), ('isp', 'ISP'), ('enterprise', 'Enterprise')], default='personal', max_length=20)),
                ('commission_rate', models.DecimalField(blank=True, decimal_places=2, help_text='Platform commission in percent. Leave empty to use the business type rate.', max_digits=5, null=True)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone_number', models.CharField(blank=True, max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='billing_accounts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'accounts',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Router',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('router_type', models.CharField(choices=[('mikrotik', 'MikroTik')], default='mikrotik', max_length=20)),
                ('host', models.CharField(help_text='Local IP or hostname', max_length=255)),
                ('vpn_ip', models.GenericIPAddressField(blank=True, help_text='Address inside the management VPN tunnel', null=True)),
                ('port', models.IntegerField(default=8728)),
                ('username', models.CharField(default='admin', max_length=100)),
                ('password', models.CharField(max_length=255)),
                ('use_ssl', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('online', 'Online'), ('offline', 'Offline'), ('configuring', 'Configuring'), ('error', 'Error')], default='configuring', max_length=20)),
                ('last_seen', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='routers', to='vouchers.account')),
            ],
            options={
                'db_table': 'routers',
                'ordering': ['account', 'name'],
                'unique_together': {('account', 'name')},
            },
        ),
        migrations.CreateModel(
            name='SystemConfig',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=100, unique=True)),
                ('value', models.JSONField(default=dict)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'system_config',
                'ordering': ['key'],
            },
        ),
        migrations.CreateModel(
            name='Voucher',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(db_index=True, max_length=32)),
                ('password', models.CharField(max_length=32)),
                ('reference', models.CharField(max_length=20, unique=True)),
                ('package_type', models.CharField(max_length=100)),
                ('package_display_name', models.CharField(blank=True, max_length=150)),
                ('duration_minutes', models.PositiveIntegerField()),
                ('data_limit_bytes', models.BigIntegerField(default=0, help_text='0 = unlimited')),
                ('upload_kbps', models.PositiveIntegerField(default=512)),
                ('download_kbps', models.PositiveIntegerField(default=1024)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('currency', models.CharField(default='KES', max_length=3)),
                ('used', models.BooleanField(default=False)),
                ('device_mac', models.CharField(blank=True, max_length=17)),
                ('start_time', models.DateTimeField(blank=True, null=True)),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('data_used', models.BigIntegerField(default=0)),
                ('time_used', models.PositiveIntegerField(default=0, help_text='Seconds')),
                ('max_duration_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('expected_end_time', models.DateTimeField(blank=True, null=True)),
                ('timed_on_purchase', models.BooleanField(default=False)),
                ('purchase_expires_at', models.DateTimeField(blank=True, null=True)),
                ('payment_method', models.CharField(blank=True, max_length=20)),
                ('payment_transaction_id', models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ('payment_phone_number', models.CharField(blank=True, max_length=100)),
                ('payment_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('payment_commission', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('payment_date', models.DateTimeField(blank=True, null=True)),
                ('expires_at', models.DateTimeField(blank=True, help_text='Activation deadline for unsold vouchers', null=True)),
                ('auto_delete', models.BooleanField(default=True)),
                ('expired_by', models.CharField(blank=True, choices=[('activationExpiry', 'Activation deadline passed'), ('purchaseExpiry', 'Purchase window elapsed'), ('usageEnded', 'Usage period ended')], max_length=20)),
                ('batch_id', models.CharField(blank=True, db_index=True, max_length=50)),
                ('batch_size', models.PositiveIntegerField(default=1)),
                ('status', models.CharField(choices=[('active', 'Active'), ('pending', 'Pending payment'), ('paid', 'Paid'), ('used', 'Used'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], db_index=True, default='active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('generated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='generated_vouchers', to=settings.AUTH_USER_MODEL)),
                ('router', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='vouchers', to='vouchers.router')),
            ],
            options={
                'db_table': 'vouchers',
                'ordering': ['-created_at'],
                'unique_together': {('router', 'code')},
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_id', models.CharField(max_length=100, unique=True)),
                ('transaction_type', models.CharField(choices=[('voucher_purchase', 'Voucher Purchase')], default='voucher_purchase', max_length=30)),
                ('method', models.CharField(default='mpesa', max_length=20)),
                ('reference', models.CharField(blank=True, max_length=100)),
                ('phone_number', models.CharField(blank=True, max_length=100)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('commission', models.DecimalField(decimal_places=2, max_digits=10)),
                ('net_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('currency', models.CharField(default='KES', max_length=3)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='vouchers.account')),
                ('router', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='vouchers.router')),
                ('voucher', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='vouchers.voucher')),
            ],
            options={
                'db_table': 'transactions',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(db_index=True, max_length=50)),
                ('resource_type', models.CharField(max_length=50)),
                ('resource_id', models.CharField(db_index=True, max_length=64)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('ip_address', models.CharField(blank=True, max_length=64)),
                ('user_agent', models.TextField(blank=True)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='vouchers.account')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='voucher_audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'audit_logs',
                'ordering': ['-timestamp'],
            },
        ),
        migrations.CreateModel(
            name='WebhookLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source', models.CharField(default='mpesa_confirmation', max_length=50)),
                ('type', models.CharField(default='c2b_confirmation', max_length=50)),
                ('status', models.CharField(choices=[('success', 'Processed Successfully'), ('duplicate', 'Duplicate'), ('failed', 'Rejected'), ('error', 'Error')], max_length=20)),
                ('reason', models.CharField(blank=True, max_length=50)),
                ('reference', models.CharField(blank=True, db_index=True, max_length=100)),
                ('transaction_id', models.CharField(blank=True, max_length=100)),
                ('payload', models.JSONField(blank=True, default=dict)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('processing_time_ms', models.PositiveIntegerField(blank=True, null=True)),
                ('source_ip', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True)),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('voucher', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='webhook_logs', to='vouchers.voucher')),
            ],
            options={
                'db_table': 'webhook_logs',
                'ordering': ['-timestamp'],
                'indexes': [models.Index(fields=['reference', '-timestamp'], name='webhook_logs_ref_ts_idx'), models.Index(fields=['status', '-timestamp'], name='webhook_logs_status_ts_idx')],
            },
        ),
    ]
