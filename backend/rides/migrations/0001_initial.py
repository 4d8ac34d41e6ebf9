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
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('vehicle_type', models.CharField(choices=[('car', 'Private Car'), ('bike', 'Private Bike'), ('cng', 'CNG/Uber/Taxi')], max_length=10)),
                ('pickup_name', models.CharField(max_length=255)),
                ('destination_name', models.CharField(max_length=255)),
                ('departure_time', models.DateTimeField()),
                ('total_fare', models.DecimalField(decimal_places=2, max_digits=10)),
                ('seat_capacity', models.PositiveSmallIntegerField()),
                ('is_female_only', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('open', 'Open'), ('full', 'Full'), ('departed', 'Departed'), ('cancelled', 'Cancelled')], default='open', max_length=20)),
                ('join_code', models.CharField(blank=True, max_length=12, null=True, unique=True)),
                ('version', models.PositiveIntegerField(default=0)),
                ('last_message_seq', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('host', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='hosted_rides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'rides',
                'ordering': ['departure_time'],
            },
        ),
        migrations.CreateModel(
            name='RideMembership',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='rides.ride')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ride_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'ride_memberships',
                'ordering': ['joined_at'],
            },
        ),
        migrations.AddField(
            model_name='ride',
            name='members',
            field=models.ManyToManyField(blank=True, related_name='joined_rides', through='rides.RideMembership', to=settings.AUTH_USER_MODEL),
        ),
        migrations.AddIndex(
            model_name='ride',
            index=models.Index(fields=['status', 'departure_time'], name='rides_status_departure_idx'),
        ),
        migrations.AddConstraint(
            model_name='ridemembership',
            constraint=models.UniqueConstraint(fields=('ride', 'user'), name='unique_ride_member'),
        ),
    ]
