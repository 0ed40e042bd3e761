import uuid

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies: list[tuple[str, str]] = []

    operations = [
        migrations.CreateModel(
            name="SiteSettings",
            fields=[
                ("id", models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "live_emails",
                    models.BooleanField(
                        default=False,
                        help_text="Deliver to real recipients. When off, mail goes to the internal catchall.",
                    ),
                ),
                ("frontend_base_url", models.URLField(default=settings.FRONTEND_BASE_URL)),
                (
                    "internal_catchall_email",
                    models.EmailField(
                        default=settings.INTERNAL_CATCHALL_EMAIL,
                        help_text="The catchall email address for internal use.",
                        max_length=254,
                        verbose_name="Internal Catchall Email",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Common Settings",
                "verbose_name_plural": "Common Settings",
            },
        ),
        migrations.CreateModel(
            name="EmailLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True)),
                ("to", models.EmailField(db_index=True, max_length=254)),
                ("subject", models.TextField(db_index=True)),
                ("sent_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("message_id", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("compressed_body", models.BinaryField(blank=True, null=True)),
                ("compressed_html", models.BinaryField(blank=True, null=True)),
            ],
            options={
                "abstract": False,
            },
        ),
    ]
