from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with the attributes ride rules depend on"""
    GENDER_FEMALE = 'female'
    GENDER_MALE = 'male'
    GENDER_OTHER = 'other'

    GENDER_CHOICES = [
        (GENDER_FEMALE, 'Female'),
        (GENDER_MALE, 'Male'),
        (GENDER_OTHER, 'Other'),
    ]

    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True, default='')
    phone_number = models.CharField(max_length=15, blank=True, default='')
    student_id = models.CharField(max_length=20, blank=True, default='')
    profile_picture = models.ImageField(upload_to='profile_pictures/', null=True, blank=True)

    class Meta:
        db_table = 'users'

    @property
    def is_female(self):
        return self.gender == self.GENDER_FEMALE

    @property
    def display_name(self):
        full_name = self.get_full_name()
        return full_name or self.username

    def __str__(self):
        return self.username
