import django.core.validators
import django.db.models.deletion
import uuid
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Listing',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True, max_length=1000)),
                ('lane', models.CharField(choices=[('CLEAN', 'Clean Traffic'), ('PRIVATE', 'Private Traffic')], db_index=True, max_length=10)),
                ('traffic_type', models.CharField(choices=[('EMAIL', 'Email'), ('SOCIAL', 'Social'), ('NATIVE', 'Native'), ('DISPLAY', 'Display'), ('PUSH', 'Push'), ('MIXED', 'Mixed')], db_index=True, max_length=10)),
                ('price', models.DecimalField(decimal_places=2, help_text='Price per 1000 visitors', max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.01')), django.core.validators.MaxValueValidator(Decimal('10000'))])),
                ('min_order', models.PositiveIntegerField(help_text='Minimum visitors per order', validators=[django.core.validators.MinValueValidator(100)])),
                ('max_daily', models.PositiveIntegerField(help_text='Maximum visitors deliverable per day', validators=[django.core.validators.MinValueValidator(1000)])),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('seller', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='listings', to='accounts.sellerprofile')),
            ],
            options={
                'verbose_name': 'Listing',
                'verbose_name_plural': 'Listings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['lane', 'is_active', '-created_at'], name='listing_lane_active_idx'),
                    models.Index(fields=['seller', 'is_active'], name='listing_seller_active_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('min_order__lte', models.F('max_daily'))), name='listing_min_order_lte_max_daily'),
                ],
            },
        ),
    ]
