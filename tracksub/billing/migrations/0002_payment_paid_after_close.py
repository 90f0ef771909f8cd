from django.db import migrations
from django.db import models


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="payment",
            name="activation_status",
            field=models.CharField(
                choices=[
                    ("NOT_APPLICABLE", "Not applicable"),
                    ("ACTIVATED", "Activated"),
                    ("DEFERRED", "Deferred"),
                    ("PAID_AFTER_CLOSE", "Paid after close"),
                ],
                default="NOT_APPLICABLE",
                max_length=20,
            ),
        ),
    ]
