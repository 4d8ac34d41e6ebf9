from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from rides.models import Ride
from services.reviews import submit_review
from services.ride_management import create_ride, join_ride
from .models import User


class AuthApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_then_login(self):
        response = self.client.post('/api/auth/register/', {
            'username': 'ayesha',
            'email': 'ayesha@example.com',
            'password': 'password123',
            'gender': 'female',
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertIn('access', response.data['tokens'])
        self.assertTrue(User.objects.get(username='ayesha').is_female)

        response = self.client.post('/api/auth/login/', {
            'username': 'ayesha',
            'password': 'password123',
        }, format='json')
        self.assertEqual(response.status_code, 200)

        refresh = response.data['tokens']['refresh']
        response = self.client.post('/api/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.data)

    def test_login_with_wrong_password(self):
        User.objects.create_user(username='rafi', password='password123')

        response = self.client.post('/api/auth/login/', {
            'username': 'rafi',
            'password': 'nope',
        }, format='json')

        self.assertEqual(response.status_code, 400)

    def test_short_password_rejected(self):
        response = self.client.post('/api/auth/register/', {
            'username': 'short',
            'password': 'abc',
        }, format='json')
        self.assertEqual(response.status_code, 400)

    def test_bad_refresh_token(self):
        response = self.client.post('/api/auth/refresh/', {'refresh': 'garbage'}, format='json')
        self.assertEqual(response.status_code, 401)

    def test_jwt_bearer_authenticates(self):
        User.objects.create_user(username='rafi', password='password123')
        tokens = self.client.post('/api/auth/login/', {
            'username': 'rafi',
            'password': 'password123',
        }, format='json').data['tokens']

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = self.client.get('/api/users/me/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['username'], 'rafi')


class ProfileApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.host = User.objects.create_user(
            username='host', password='pass12345', first_name='Tanvir', last_name='Ahmed'
        )
        self.rider = User.objects.create_user(username='rider', password='pass12345')
        ride = create_ride(
            self.host, 'car', 'Campus Gate 1', 'Uttara',
            timezone.now() + timedelta(hours=1), '400',
        )
        join_ride(ride.id, self.rider)
        Ride.objects.filter(pk=ride.pk).update(departure_time=timezone.now() - timedelta(hours=1))
        submit_review(ride.id, self.rider, self.host.id, 4, 'Good driver')
        self.client.force_authenticate(user=self.rider)

    def test_public_profile_has_rating_summary(self):
        response = self.client.get(f'/api/users/{self.host.id}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['name'], 'Tanvir Ahmed')
        self.assertEqual(response.data['average_rating'], 4.0)
        self.assertEqual(response.data['total_reviews'], 1)
        self.assertEqual(response.data['total_rides'], 1)
        self.assertNotIn('phone_number', response.data)

    def test_user_reviews(self):
        response = self.client.get(f'/api/users/{self.host.id}/reviews/')

        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['reviews'][0]['comment'], 'Good driver')

    def test_unknown_user(self):
        response = self.client.get('/api/users/99999/')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['code'], 'not_found')

    def test_update_own_profile(self):
        response = self.client.patch('/api/users/me/', {'gender': 'female', 'phone_number': '+8801711111111'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.rider.refresh_from_db()
        self.assertTrue(self.rider.is_female)
