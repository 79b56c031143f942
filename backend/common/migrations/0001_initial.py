import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AdminActionLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('APPROVE_SELLER', 'Approve Seller'), ('REVOKE_SELLER', 'Revoke Seller Approval'), ('BAN_USER', 'Ban User'), ('UNBAN_USER', 'Unban User'), ('RESOLVE_DISPUTE', 'Resolve Dispute'), ('REJECT_DISPUTE', 'Reject Dispute'), ('RELEASE_ESCROW', 'Release Escrow')], db_index=True, max_length=30)),
                ('details', models.JSONField(default=dict, help_text='Additional details about the action')),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('admin_user', models.ForeignKey(help_text='Admin who performed the action', on_delete=django.db.models.deletion.CASCADE, related_name='admin_actions_performed', to=settings.AUTH_USER_MODEL)),
                ('target_user', models.ForeignKey(blank=True, help_text='User affected by the action (if applicable)', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='admin_actions_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Admin Action Log',
                'verbose_name_plural': 'Admin Action Logs',
                'db_table': 'admin_action_log',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['admin_user', 'timestamp'], name='adminlog_admin_ts_idx'),
                    models.Index(fields=['target_user', 'timestamp'], name='adminlog_target_ts_idx'),
                    models.Index(fields=['action'], name='adminlog_action_idx'),
                ],
            },
        ),
    ]
