import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import server.apps.vault.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ContentRecord',
            fields=[
                ('content_hash', models.CharField(help_text='SHA256 hex digest of the content', max_length=64, primary_key=True, serialize=False)),
                ('storage_path', models.CharField(help_text='Backend path: {scope}/{owner_id}/{content_hash}', max_length=512)),
                ('byte_size', models.BigIntegerField(help_text='Size of the stored blob in bytes')),
                ('reference_count', models.IntegerField(default=1, help_text='Number of file records referencing this content')),
                ('pending_delete', models.BooleanField(default=False, help_text='Count reached zero but blob deletion failed')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Content Record',
                'verbose_name_plural': 'Content Records',
                'indexes': [
                    models.Index(fields=['pending_delete'], name='content_pending_delete_idx'),
                    models.Index(fields=['storage_path'], name='content_storage_path_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('reference_count__gte', 0)), name='reference_count_non_negative'),
                    models.CheckConstraint(condition=models.Q(('byte_size__gte', 0)), name='byte_size_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PendingRelease',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content_hash', models.CharField(db_index=True, max_length=64)),
                ('reason', models.CharField(max_length=255)),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('last_error', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Pending Release',
                'verbose_name_plural': 'Pending Releases',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='OwnerUsage',
            fields=[
                ('owner', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='vault_usage', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('quota_bytes', models.BigIntegerField(default=server.apps.vault.models.default_quota_bytes, help_text='Storage quota limit in bytes')),
                ('used_bytes', models.BigIntegerField(default=0, help_text='Currently used storage in bytes')),
            ],
            options={
                'verbose_name': 'Owner Usage',
                'verbose_name_plural': 'Owner Usage',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quota_bytes__gte', 0)), name='quota_bytes_non_negative'),
                    models.CheckConstraint(condition=models.Q(('used_bytes__gte', 0)), name='used_bytes_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FileRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('folder_id', models.UUIDField(blank=True, db_index=True, null=True)),
                ('display_name', models.CharField(max_length=255)),
                ('mime_type', models.CharField(default='application/octet-stream', max_length=255)),
                ('visibility', models.CharField(choices=[('PRIVATE', 'Private'), ('PUBLIC', 'Public'), ('SHARED_WITH_USERS', 'Shared with users')], default='PRIVATE', max_length=32)),
                ('share_token', models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ('logical_size', models.BigIntegerField(help_text='Byte size charged to the owner quota')),
                ('download_count', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('content', models.ForeignKey(db_column='content_hash', on_delete=django.db.models.deletion.PROTECT, related_name='file_records', to='vault.contentrecord')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='vault_files', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'File Record',
                'verbose_name_plural': 'File Records',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['owner', '-created_at'], name='file_owner_recent_idx'),
                ],
            },
        ),
    ]
