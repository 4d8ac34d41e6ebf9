from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('rides', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='ride',
            name='removed_member_ids',
            field=models.JSONField(blank=True, default=list),
        ),
    ]
