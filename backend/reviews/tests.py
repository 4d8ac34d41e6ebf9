from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from rides.models import Ride
from services.exceptions import (
    DuplicateReviewError,
    InvalidRatingError,
    NotEligibleError,
    RideNotFoundError,
)
from services.reviews import rating_summary, review_targets, reviews_for_user, submit_review
from services.ride_management import create_ride, join_ride
from .models import Review


class ReviewLedgerTests(TestCase):
    def setUp(self):
        self.host = User.objects.create_user(username='host', password='pass12345')
        self.member = User.objects.create_user(username='member', password='pass12345')
        self.other = User.objects.create_user(username='other', password='pass12345')
        self.outsider = User.objects.create_user(username='outsider', password='pass12345')
        self.ride = create_ride(
            self.host, 'car', 'Campus Gate 1', 'Gulshan 1',
            timezone.now() + timedelta(hours=1), '300',
        )
        join_ride(self.ride.id, self.member)
        join_ride(self.ride.id, self.other)

    def depart(self):
        Ride.objects.filter(pk=self.ride.pk).update(departure_time=timezone.now() - timedelta(minutes=10))

    def test_review_after_departure(self):
        self.depart()

        review = submit_review(self.ride.id, self.member, self.host.id, 5, '  Smooth ride ')

        self.assertEqual(review.rating, 5)
        self.assertEqual(review.comment, 'Smooth ride')
        self.assertEqual(review.reviewee_id, self.host.id)

    def test_members_can_review_each_other(self):
        self.depart()
        review = submit_review(self.ride.id, self.member, self.other.id, 4)
        self.assertIsNone(review.comment)

    def test_rating_bounds(self):
        self.depart()
        for rating in (0, 6, 3.5, True, '5', None):
            with self.assertRaises(InvalidRatingError):
                submit_review(self.ride.id, self.member, self.host.id, rating)
        self.assertFalse(Review.objects.exists())

    def test_second_review_is_duplicate(self):
        self.depart()
        submit_review(self.ride.id, self.member, self.host.id, 4)

        with self.assertRaises(DuplicateReviewError):
            submit_review(self.ride.id, self.member, self.host.id, 2)

        self.assertEqual(Review.objects.count(), 1)

    def test_not_eligible_before_departure(self):
        with self.assertRaises(NotEligibleError):
            submit_review(self.ride.id, self.member, self.host.id, 5)

    def test_not_eligible_cases(self):
        self.depart()

        with self.assertRaises(NotEligibleError):
            submit_review(self.ride.id, self.member, self.member.id, 5)
        with self.assertRaises(NotEligibleError):
            submit_review(self.ride.id, self.outsider, self.host.id, 5)
        with self.assertRaises(NotEligibleError):
            submit_review(self.ride.id, self.host, self.outsider.id, 1)

    def test_missing_ride(self):
        with self.assertRaises(RideNotFoundError):
            submit_review(123456, self.member, self.host.id, 5)

    def test_review_targets(self):
        self.depart()
        submit_review(self.ride.id, self.member, self.host.id, 5)

        targets = {t['user'].id: t['reviewed'] for t in review_targets(self.ride.id, self.member)}

        self.assertEqual(targets, {self.host.id: True, self.other.id: False})

    def test_summary_and_listing(self):
        self.depart()
        submit_review(self.ride.id, self.member, self.host.id, 5)
        submit_review(self.ride.id, self.other, self.host.id, 4)

        summary = rating_summary(self.host.id)

        self.assertEqual(summary, {'average_rating': 4.5, 'total_reviews': 2, 'total_rides': 1})
        self.assertEqual(len(reviews_for_user(self.host.id)), 2)
        self.assertEqual(
            rating_summary(self.outsider.id),
            {'average_rating': None, 'total_reviews': 0, 'total_rides': 0},
        )


class ReviewApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.host = User.objects.create_user(username='host', password='pass12345')
        self.member = User.objects.create_user(username='member', password='pass12345')
        self.ride = create_ride(
            self.host, 'bike', 'Campus Gate 1', 'Badda',
            timezone.now() + timedelta(hours=1), '80',
        )
        join_ride(self.ride.id, self.member)
        Ride.objects.filter(pk=self.ride.pk).update(departure_time=timezone.now() - timedelta(minutes=10))
        self.client.force_authenticate(user=self.member)
        self.url = f'/api/rides/{self.ride.id}/reviews/'

    def test_submit_and_duplicate(self):
        response = self.client.post(self.url, {'reviewee_id': self.host.id, 'rating': 5}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['reviewer']['username'], 'member')

        response = self.client.post(self.url, {'reviewee_id': self.host.id, 'rating': 3}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'duplicate')

    def test_invalid_rating(self):
        response = self.client.post(self.url, {'reviewee_id': self.host.id, 'rating': 9}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_rating')

    def test_non_numeric_rating_is_invalid_rating(self):
        for rating in ('abc', None, 4.5, [5]):
            response = self.client.post(self.url, {'reviewee_id': self.host.id, 'rating': rating}, format='json')

            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.data['code'], 'invalid_rating')
        self.assertFalse(Review.objects.exists())

    def test_targets(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['participants'][0]['user']['id'], self.host.id)
        self.assertFalse(response.data['participants'][0]['reviewed'])
