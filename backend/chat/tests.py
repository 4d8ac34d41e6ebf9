from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from rides.models import Ride
from services.chat import append_message, get_history
from services.exceptions import (
    NotAuthorizedError,
    RideClosedError,
    RideNotFoundError,
    RideValidationError,
)
from services.ride_management import create_ride, delete_ride, join_ride, leave_ride, update_status
from .models import ChatMessage


class ChatStreamTests(TestCase):
    def setUp(self):
        self.host = User.objects.create_user(username='host', password='pass12345')
        self.member = User.objects.create_user(username='member', password='pass12345')
        self.outsider = User.objects.create_user(username='outsider', password='pass12345')
        self.ride = create_ride(
            self.host, 'car', 'Campus Gate 1', 'Mirpur 10',
            timezone.now() + timedelta(hours=1), '200',
        )
        join_ride(self.ride.id, self.member)

    def test_messages_get_increasing_sequences(self):
        first = append_message(self.ride.id, self.host, 'Leaving in 10')
        second = append_message(self.ride.id, self.member, '  On my way  ')
        third = append_message(self.ride.id, self.host, 'See you')

        self.assertEqual([first.sequence, second.sequence, third.sequence], [1, 2, 3])
        self.assertEqual(second.text, 'On my way')
        self.assertLessEqual(first.sent_at, second.sent_at)
        self.assertLessEqual(second.sent_at, third.sent_at)

        history = get_history(self.ride.id, self.member)
        self.assertEqual([m.id for m in history], [first.id, second.id, third.id])

        newest_first = get_history(self.ride.id, self.member, newest_first=True)
        self.assertEqual([m.id for m in newest_first], [third.id, second.id, first.id])

        resumed = get_history(self.ride.id, self.member, after_sequence=first.sequence)
        self.assertEqual([m.id for m in resumed], [second.id, third.id])

    def test_sent_at_never_goes_backwards(self):
        first = append_message(self.ride.id, self.host, 'one')
        ChatMessage.objects.filter(pk=first.pk).update(sent_at=timezone.now() + timedelta(minutes=5))

        second = append_message(self.ride.id, self.host, 'two')

        first.refresh_from_db()
        self.assertGreaterEqual(second.sent_at, first.sent_at)

    @override_settings(CHAT_HISTORY_LIMIT=2)
    def test_history_without_cursor_returns_latest_window(self):
        for text in ('a', 'b', 'c'):
            append_message(self.ride.id, self.host, text)

        history = get_history(self.ride.id, self.host)

        self.assertEqual([m.text for m in history], ['b', 'c'])

    def test_outsider_cannot_post_or_read(self):
        with self.assertRaises(NotAuthorizedError):
            append_message(self.ride.id, self.outsider, 'hello?')
        with self.assertRaises(NotAuthorizedError):
            get_history(self.ride.id, self.outsider)

    def test_text_validation(self):
        with self.assertRaises(RideValidationError):
            append_message(self.ride.id, self.host, '   ')

        with override_settings(CHAT_MESSAGE_MAX_LENGTH=5):
            with self.assertRaises(RideValidationError):
                append_message(self.ride.id, self.host, 'too long')

        self.assertFalse(ChatMessage.objects.exists())

    def test_missing_ride(self):
        with self.assertRaises(RideNotFoundError):
            append_message(987654, self.host, 'hi')

    def test_cancelled_ride_is_read_only(self):
        append_message(self.ride.id, self.host, 'Running late')
        delete_ride(self.ride.id, self.host)

        with self.assertRaises(RideClosedError):
            append_message(self.ride.id, self.host, 'Never mind')

        # The member never posted but still reads the chat of the cancelled ride
        history = get_history(self.ride.id, self.member)
        self.assertEqual([m.text for m in history], ['Running late'])
        self.assertEqual(len(get_history(self.ride.id, self.host)), 1)

        with self.assertRaises(NotAuthorizedError):
            get_history(self.ride.id, self.outsider)

    def test_cancel_by_status_update_keeps_member_access(self):
        append_message(self.ride.id, self.host, 'Trip is off')
        update_status(self.ride.id, Ride.STATUS_CANCELLED)

        history = get_history(self.ride.id, self.member)

        self.assertEqual([m.text for m in history], ['Trip is off'])

    def test_former_member_without_messages_loses_access(self):
        leave_ride(self.ride.id, self.member)
        with self.assertRaises(NotAuthorizedError):
            get_history(self.ride.id, self.member)

    def test_departed_ride_still_accepts_messages(self):
        Ride.objects.filter(pk=self.ride.pk).update(departure_time=timezone.now() - timedelta(minutes=1))

        message = append_message(self.ride.id, self.member, 'Thanks everyone')

        self.assertEqual(message.ride.status, Ride.STATUS_DEPARTED)

    @patch('services.chat.stream.broadcast_chat_message')
    def test_message_is_broadcast_after_commit(self, mock_broadcast):
        with self.captureOnCommitCallbacks(execute=True):
            message = append_message(self.ride.id, self.host, 'hello')

        mock_broadcast.assert_called_once_with(message)


class ChatApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.host = User.objects.create_user(username='host', password='pass12345')
        self.outsider = User.objects.create_user(username='outsider', password='pass12345')
        self.ride = create_ride(
            self.host, 'cng', 'Campus Gate 1', 'Motijheel',
            timezone.now() + timedelta(hours=1), '450',
        )

    def test_post_and_read_messages(self):
        self.client.force_authenticate(user=self.host)

        response = self.client.post(f'/api/rides/{self.ride.id}/messages/', {'text': 'Hi all'}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['sequence'], 1)
        self.assertEqual(response.data['sender']['username'], 'host')

        self.client.post(f'/api/rides/{self.ride.id}/messages/', {'text': 'Gate 1'}, format='json')

        response = self.client.get(f'/api/rides/{self.ride.id}/messages/', {'order': 'desc'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([m['text'] for m in response.data['messages']], ['Gate 1', 'Hi all'])

        response = self.client.get(f'/api/rides/{self.ride.id}/messages/', {'after': 1})
        self.assertEqual(response.data['count'], 1)

    def test_outsider_gets_403(self):
        self.client.force_authenticate(user=self.outsider)

        response = self.client.post(f'/api/rides/{self.ride.id}/messages/', {'text': 'Hi'}, format='json')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'not_authorized')

    def test_blank_message_is_rejected(self):
        self.client.force_authenticate(user=self.host)

        response = self.client.post(f'/api/rides/{self.ride.id}/messages/', {'text': ''}, format='json')

        self.assertEqual(response.status_code, 400)
