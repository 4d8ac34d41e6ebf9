from datetime import timedelta
from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.test import TransactionTestCase
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import User
from services.chat import append_message
from services.ride_management import create_ride, delete_ride, join_ride, leave_ride
from .middleware import JWTOrCookieAuthMiddleware
from .notifications import ride_group_name
from .routing import websocket_urlpatterns

application = JWTOrCookieAuthMiddleware(URLRouter(websocket_urlpatterns))


class RideChatConsumerTests(TransactionTestCase):
    def setUp(self):
        self.host = User.objects.create_user(username='host', password='pass12345')
        self.member = User.objects.create_user(username='member', password='pass12345')
        self.outsider = User.objects.create_user(username='outsider', password='pass12345')
        self.ride = create_ride(
            self.host, 'car', 'Campus Gate 1', 'Banani 11',
            timezone.now() + timedelta(hours=1), '300',
        )
        join_ride(self.ride.id, self.member)

    def tearDown(self):
        async_to_sync(get_channel_layer().flush)()

    def communicator(self, user, query=''):
        token = str(AccessToken.for_user(user))
        path = f'/ws/rides/{self.ride.id}/chat/?token={token}'
        if query:
            path = f'{path}&{query}'
        return WebsocketCommunicator(application, path)

    async def test_rejects_missing_token(self):
        communicator = WebsocketCommunicator(application, f'/ws/rides/{self.ride.id}/chat/')

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4401)

    async def test_rejects_outsider(self):
        communicator = self.communicator(self.outsider)
        await communicator.connect()

        error = await communicator.receive_json_from()
        self.assertEqual(error['code'], 'not_authorized')
        closed = await communicator.receive_output()
        self.assertEqual(closed['type'], 'websocket.close')
        self.assertEqual(closed['code'], 4403)

    async def test_unknown_ride_closes_with_not_found(self):
        token = str(AccessToken.for_user(self.member))
        communicator = WebsocketCommunicator(application, f'/ws/rides/999999/chat/?token={token}')
        await communicator.connect()

        error = await communicator.receive_json_from()
        self.assertEqual(error['code'], 'not_found')
        closed = await communicator.receive_output()
        self.assertEqual(closed['code'], 4404)

    async def test_history_then_live_messages(self):
        await database_sync_to_async(append_message)(self.ride.id, self.host, 'first')
        await database_sync_to_async(append_message)(self.ride.id, self.member, 'second')

        communicator = self.communicator(self.member)
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        history = await communicator.receive_json_from()
        self.assertEqual(history['type'], 'history')
        self.assertEqual([m['text'] for m in history['messages']], ['first', 'second'])

        await database_sync_to_async(append_message)(self.ride.id, self.host, 'third')

        live = await communicator.receive_json_from()
        self.assertEqual(live['type'], 'chat_message')
        self.assertEqual(live['message']['text'], 'third')
        self.assertEqual(live['message']['sequence'], 3)

        await communicator.disconnect()

    async def test_history_newest_first_and_resume(self):
        for text in ('a', 'b', 'c'):
            await database_sync_to_async(append_message)(self.ride.id, self.host, text)

        communicator = self.communicator(self.host, 'order=desc')
        await communicator.connect()
        history = await communicator.receive_json_from()
        self.assertEqual(history['order'], 'desc')
        self.assertEqual([m['text'] for m in history['messages']], ['c', 'b', 'a'])
        await communicator.disconnect()

        communicator = self.communicator(self.host, 'after=2')
        await communicator.connect()
        history = await communicator.receive_json_from()
        self.assertEqual([m['text'] for m in history['messages']], ['c'])
        await communicator.disconnect()

    async def test_live_copies_already_in_history_are_dropped(self):
        await database_sync_to_async(append_message)(self.ride.id, self.host, 'one')
        await database_sync_to_async(append_message)(self.ride.id, self.host, 'two')

        communicator = self.communicator(self.member)
        await communicator.connect()
        await communicator.receive_json_from()

        channel_layer = get_channel_layer()
        group = ride_group_name(self.ride.id)
        await channel_layer.group_send(group, {
            'type': 'chat_message', 'ride_id': self.ride.id,
            'message': {'id': 2, 'sequence': 2, 'text': 'two'},
        })
        await channel_layer.group_send(group, {
            'type': 'chat_message', 'ride_id': self.ride.id,
            'message': {'id': 3, 'sequence': 3, 'text': 'three'},
        })

        live = await communicator.receive_json_from()
        self.assertEqual(live['message']['sequence'], 3)
        self.assertTrue(await communicator.receive_nothing())

        await communicator.disconnect()

    async def test_send_message_over_socket(self):
        communicator = self.communicator(self.member)
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({'type': 'send_message', 'text': 'Running 5 min late'})

        frames = [await communicator.receive_json_from(), await communicator.receive_json_from()]
        by_type = {frame['type']: frame for frame in frames}
        self.assertEqual(by_type['message_sent']['sequence'], 1)
        self.assertEqual(by_type['chat_message']['message']['text'], 'Running 5 min late')

        await communicator.send_json_to({'type': 'send_message', 'text': '   '})
        error = await communicator.receive_json_from()
        self.assertEqual(error['code'], 'validation_error')

        await communicator.send_json_to({'type': 'ping'})
        self.assertEqual((await communicator.receive_json_from())['type'], 'pong')

        await communicator.disconnect()

    async def test_host_delete_closes_socket(self):
        communicator = self.communicator(self.member)
        await communicator.connect()
        await communicator.receive_json_from()

        await database_sync_to_async(delete_ride)(self.ride.id, self.host)

        event = await communicator.receive_json_from()
        self.assertEqual(event['type'], 'ride_cancelled')
        closed = await communicator.receive_output()
        self.assertEqual(closed['type'], 'websocket.close')

    async def test_cancelled_ride_replays_history_then_closes(self):
        await database_sync_to_async(append_message)(self.ride.id, self.host, 'bye')
        await database_sync_to_async(delete_ride)(self.ride.id, self.host)

        communicator = self.communicator(self.host)
        await communicator.connect()

        history = await communicator.receive_json_from()
        self.assertEqual([m['text'] for m in history['messages']], ['bye'])
        self.assertEqual((await communicator.receive_json_from())['type'], 'ride_cancelled')
        closed = await communicator.receive_output()
        self.assertEqual(closed['type'], 'websocket.close')

    async def test_leaving_member_is_disconnected(self):
        host_socket = self.communicator(self.host)
        member_socket = self.communicator(self.member)
        await host_socket.connect()
        await member_socket.connect()
        await host_socket.receive_json_from()
        await member_socket.receive_json_from()

        await database_sync_to_async(leave_ride)(self.ride.id, self.member)

        for socket in (host_socket, member_socket):
            event = await socket.receive_json_from()
            self.assertEqual(event['type'], 'membership_changed')
            self.assertEqual(event['action'], 'left')
            self.assertEqual(event['user_id'], self.member.id)

        closed = await member_socket.receive_output()
        self.assertEqual(closed['type'], 'websocket.close')
        self.assertTrue(await host_socket.receive_nothing())

        await host_socket.disconnect()

    def _store_without_broadcast(self, text):
        from chat.serializers import ChatMessageSerializer

        with patch('services.chat.stream.broadcast_chat_message'):
            message = append_message(self.ride.id, self.host, text)
        return dict(ChatMessageSerializer(message).data)

    async def test_out_of_order_broadcasts_are_backfilled(self):
        communicator = self.communicator(self.member)
        await communicator.connect()
        history = await communicator.receive_json_from()
        self.assertEqual(history['messages'], [])

        first = await database_sync_to_async(self._store_without_broadcast)('first')
        second = await database_sync_to_async(self._store_without_broadcast)('second')

        # The later commit's broadcast overtakes the earlier one
        channel_layer = get_channel_layer()
        group = ride_group_name(self.ride.id)
        await channel_layer.group_send(group, {
            'type': 'chat_message', 'ride_id': self.ride.id, 'message': second,
        })
        await channel_layer.group_send(group, {
            'type': 'chat_message', 'ride_id': self.ride.id, 'message': first,
        })

        delivered = [await communicator.receive_json_from(), await communicator.receive_json_from()]
        self.assertEqual([f['message']['sequence'] for f in delivered], [1, 2])
        self.assertEqual([f['message']['text'] for f in delivered], ['first', 'second'])
        self.assertTrue(await communicator.receive_nothing())

        await communicator.disconnect()

    async def test_resume_replays_whole_backlog_in_pages(self):
        with self.settings(CHAT_HISTORY_LIMIT=2):
            for text in ('a', 'b', 'c', 'd'):
                await database_sync_to_async(append_message)(self.ride.id, self.host, text)

            communicator = self.communicator(self.member, 'after=0')
            await communicator.connect()

            page = await communicator.receive_json_from()
            self.assertEqual([m['sequence'] for m in page['messages']], [1, 2])
            self.assertTrue(page['has_more'])
            page = await communicator.receive_json_from()
            self.assertEqual([m['sequence'] for m in page['messages']], [3, 4])
            self.assertFalse(page['has_more'])

            await database_sync_to_async(append_message)(self.ride.id, self.host, 'e')

            live = await communicator.receive_json_from()
            self.assertEqual(live['message']['sequence'], 5)
            self.assertTrue(await communicator.receive_nothing())

            await communicator.disconnect()

    async def test_resume_newest_first_pages(self):
        with self.settings(CHAT_HISTORY_LIMIT=2):
            for text in ('a', 'b', 'c'):
                await database_sync_to_async(append_message)(self.ride.id, self.host, text)

            communicator = self.communicator(self.member, 'after=0&order=desc')
            await communicator.connect()

            first_page = await communicator.receive_json_from()
            second_page = await communicator.receive_json_from()
            self.assertEqual([m['text'] for m in first_page['messages']], ['c', 'b'])
            self.assertEqual([m['text'] for m in second_page['messages']], ['a'])
            self.assertFalse(second_page['has_more'])

            await communicator.disconnect()

    async def test_latest_window_flags_older_messages(self):
        with self.settings(CHAT_HISTORY_LIMIT=2):
            for text in ('a', 'b', 'c'):
                await database_sync_to_async(append_message)(self.ride.id, self.host, text)

            communicator = self.communicator(self.member)
            await communicator.connect()

            history = await communicator.receive_json_from()
            self.assertEqual([m['text'] for m in history['messages']], ['b', 'c'])
            self.assertTrue(history['has_more'])

            await communicator.disconnect()

    async def test_member_of_cancelled_ride_still_replays_history(self):
        await database_sync_to_async(append_message)(self.ride.id, self.host, 'bye')
        await database_sync_to_async(delete_ride)(self.ride.id, self.host)

        communicator = self.communicator(self.member)
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        history = await communicator.receive_json_from()
        self.assertEqual([m['text'] for m in history['messages']], ['bye'])
        self.assertEqual((await communicator.receive_json_from())['type'], 'ride_cancelled')
