# Initial migration for the Attachment model

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Attachment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('external_id', models.CharField(editable=False, max_length=64, unique=True)),
                ('owner_type', models.CharField(blank=True, max_length=255, null=True)),
                ('owner_ref', models.CharField(blank=True, max_length=255, null=True)),
                ('storage_disk', models.CharField(max_length=64)),
                ('storage_key', models.CharField(max_length=1000)),
                ('original_filename', models.CharField(max_length=500)),
                ('mime_type', models.CharField(blank=True, max_length=255)),
                ('size_bytes', models.BigIntegerField(default=0)),
                ('title', models.CharField(blank=True, max_length=255)),
                ('description', models.TextField(blank=True)),
                ('slot', models.CharField(blank=True, help_text="Caller defined label, e.g. 'avatar'", max_length=100)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('bound_at', models.DateTimeField(blank=True, null=True)),
                ('csrf_token', models.CharField(blank=True, max_length=64)),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['owner_type', 'owner_ref', 'slot'], name='attachment_owner_slot_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=(
                            models.Q(owner_type__isnull=True, owner_ref__isnull=True)
                            | models.Q(owner_type__isnull=False, owner_ref__isnull=False)
                        ),
                        name='attachment_owner_pair_complete',
                    ),
                ],
            },
        ),
    ]
