import threading
import unittest
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import User
from services.exceptions import (
	AlreadyMemberError,
	ConflictError,
	ForbiddenError,
	IneligibleError,
	NotMemberError,
	RideClosedError,
	RideFullError,
	RideNotFoundError,
	RideValidationError,
)
from services.ride_management import (
	create_ride,
	delete_ride,
	get_ride,
	join_by_code,
	join_ride,
	leave_ride,
	list_rides,
	mark_departed_rides,
	rides_for_user,
	update_status,
)
from services.ride_management import membership
from .models import Ride, RideMembership
from .tasks import mark_departed_rides_task


def make_user(username, gender='male', **extra):
	return User.objects.create_user(
		username=username,
		password='pass12345',
		gender=gender,
		**extra
	)


def publish(host, vehicle_type='car', hours=2, **extra):
	params = {
		'pickup_name': 'Campus Gate 1',
		'destination_name': 'Bashundhara R/A',
		'departure_time': timezone.now() + timedelta(hours=hours),
		'total_fare': '300.00',
	}
	params.update(extra)
	return create_ride(host, vehicle_type, **params)


def backdate(ride, minutes=5):
	Ride.objects.filter(pk=ride.pk).update(departure_time=timezone.now() - timedelta(minutes=minutes))


class RideRegistryTests(TestCase):
	def setUp(self):
		self.host = make_user('host', gender='female', first_name='Nadia', last_name='Karim')
		self.rider = make_user('rider')

	def test_create_ride_sets_capacity_and_join_code(self):
		ride = publish(self.host, vehicle_type='cng')

		self.assertEqual(ride.status, Ride.STATUS_OPEN)
		self.assertEqual(ride.seat_capacity, 3)
		self.assertEqual(ride.version, 0)
		self.assertEqual(len(ride.join_code), 6)
		self.assertEqual(ride.join_code, ride.join_code.upper())

	def test_create_ride_bike_has_one_seat(self):
		ride = publish(self.host, vehicle_type='bike')
		self.assertEqual(ride.seat_capacity, 1)

	def test_create_ride_rejects_past_departure(self):
		with self.assertRaises(RideValidationError):
			publish(self.host, hours=-1)

	def test_create_ride_rejects_unknown_vehicle(self):
		with self.assertRaises(RideValidationError):
			publish(self.host, vehicle_type='boat')

	def test_create_ride_rejects_negative_fare(self):
		with self.assertRaises(RideValidationError):
			publish(self.host, total_fare='-10')

	def test_create_ride_rejects_blank_places(self):
		with self.assertRaises(RideValidationError):
			publish(self.host, pickup_name='   ')

	def test_female_only_requires_female_host(self):
		with self.assertRaises(RideValidationError):
			publish(self.rider, is_female_only=True)

		ride = publish(self.host, is_female_only=True)
		self.assertTrue(ride.is_female_only)

	@override_settings(RIDE_VEHICLE_CAPACITY={'car': 0, 'bike': 1, 'cng': 3})
	def test_create_ride_rejects_zero_capacity(self):
		with self.assertRaises(RideValidationError):
			publish(self.host)

	def test_get_ride_missing(self):
		with self.assertRaises(RideNotFoundError):
			get_ride(999999)

	def test_get_ride_marks_departure_lazily(self):
		ride = publish(self.host)
		backdate(ride)

		ride = get_ride(ride.id)

		self.assertEqual(ride.status, Ride.STATUS_DEPARTED)
		self.assertIsNone(ride.join_code)

	def test_list_rides_filters(self):
		car = publish(self.host, vehicle_type='car', destination_name='Gulshan 2')
		bike = publish(self.rider, vehicle_type='bike', destination_name='Dhanmondi')
		later = publish(self.rider, vehicle_type='car', hours=5, destination_name='Uttara')

		self.assertEqual(list(list_rides(self.rider)), [car, bike, later])
		self.assertEqual(list(list_rides(self.rider, vehicle_type='bike')), [bike])
		self.assertEqual(list(list_rides(self.rider, vehicle_type='all')), [car, bike, later])
		self.assertEqual(list(list_rides(self.rider, query_text='gulshan')), [car])
		# host first name is searchable
		self.assertEqual(list(list_rides(self.rider, query_text='nadia')), [car])

	def test_list_rides_hides_inactive(self):
		ride = publish(self.host)
		gone = publish(self.host)
		delete_ride(gone.id, self.host)
		stale = publish(self.host)
		backdate(stale)

		self.assertEqual(list(list_rides(self.rider)), [ride])

	def test_female_only_filter_applies_to_female_requesters(self):
		women = publish(self.host, is_female_only=True)
		everyone = publish(self.host)

		self.assertEqual(list(list_rides(self.host, female_only=True)), [women])
		# Ignored for everyone else, and female-only rides stay visible
		self.assertEqual(list(list_rides(self.rider, female_only=True)), [women, everyone])

	def test_rides_for_user_includes_hosted_and_joined(self):
		hosted = publish(self.rider)
		joined = publish(self.host, hours=3)
		publish(self.host, hours=4)
		join_ride(joined.id, self.rider)

		self.assertEqual(list(rides_for_user(self.rider)), [joined, hosted])

	def test_update_status_follows_lifecycle(self):
		ride = publish(self.host, vehicle_type='bike')

		with self.assertRaises(RideValidationError):
			update_status(ride.id, Ride.STATUS_FULL)

		join_ride(ride.id, self.rider)
		with self.assertRaises(RideValidationError):
			update_status(ride.id, Ride.STATUS_OPEN)

		ride = update_status(ride.id, Ride.STATUS_DEPARTED)
		self.assertEqual(ride.status, Ride.STATUS_DEPARTED)
		self.assertIsNone(ride.join_code)

		with self.assertRaises(RideValidationError):
			update_status(ride.id, Ride.STATUS_OPEN)

	def test_update_status_rejects_unknown_status(self):
		ride = publish(self.host)
		with self.assertRaises(RideValidationError):
			update_status(ride.id, 'boarding')

	def test_update_status_cancel_removes_members(self):
		ride = publish(self.host)
		join_ride(ride.id, self.rider)

		ride = update_status(ride.id, Ride.STATUS_CANCELLED)

		self.assertEqual(ride.status, Ride.STATUS_CANCELLED)
		self.assertIsNotNone(ride.cancelled_at)
		self.assertFalse(RideMembership.objects.filter(ride=ride).exists())
		self.assertEqual(ride.removed_member_ids, [self.rider.id])

	@patch('services.ride_management.registry.notify_ride_cancelled')
	def test_update_status_cancel_notifies_subscribers(self, mock_notify):
		ride = publish(self.host)

		with self.captureOnCommitCallbacks(execute=True):
			update_status(ride.id, Ride.STATUS_CANCELLED)

		mock_notify.assert_called_once()
		self.assertEqual(mock_notify.call_args[0][0].id, ride.id)

	@patch('services.ride_management.registry.notify_ride_cancelled')
	def test_update_status_departed_does_not_notify_cancel(self, mock_notify):
		ride = publish(self.host)

		with self.captureOnCommitCallbacks(execute=True):
			update_status(ride.id, Ride.STATUS_DEPARTED)

		mock_notify.assert_not_called()


class DepartureSweepTests(TestCase):
	def setUp(self):
		self.host = make_user('host')
		self.past = publish(self.host)
		self.future = publish(self.host)
		backdate(self.past)

	def test_mark_departed_rides(self):
		self.assertEqual(mark_departed_rides(), 1)

		self.past.refresh_from_db()
		self.future.refresh_from_db()
		self.assertEqual(self.past.status, Ride.STATUS_DEPARTED)
		self.assertIsNone(self.past.join_code)
		self.assertEqual(self.future.status, Ride.STATUS_OPEN)

	def test_task_runs_sweep(self):
		self.assertEqual(mark_departed_rides_task.delay().get(), 1)

	def test_command_dry_run_changes_nothing(self):
		out = StringIO()
		call_command('mark_departed_rides', '--dry-run', stdout=out)

		self.assertIn('Would mark 1 ride(s)', out.getvalue())
		self.past.refresh_from_db()
		self.assertEqual(self.past.status, Ride.STATUS_OPEN)

	def test_command_marks_rides(self):
		out = StringIO()
		call_command('mark_departed_rides', stdout=out)

		self.assertIn('Marked 1 ride(s)', out.getvalue())
		self.past.refresh_from_db()
		self.assertEqual(self.past.status, Ride.STATUS_DEPARTED)


class MembershipTests(TestCase):
	def setUp(self):
		self.host = make_user('host', gender='female')
		self.alice = make_user('alice', gender='female')
		self.bob = make_user('bob')
		self.carol = make_user('carol', gender='female')
		self.ride = publish(self.host)

	def test_join_then_leave_restores_ride(self):
		before = get_ride(self.ride.id)

		result = join_ride(self.ride.id, self.bob)
		self.assertTrue(result.success)
		self.assertEqual(result.extra['seats_available'], 2)
		self.assertTrue(result.ride.is_member(self.bob.id))

		result = leave_ride(self.ride.id, self.bob)
		ride = result.ride

		self.assertEqual(ride.member_ids(), set())
		self.assertEqual(ride.status, before.status)
		self.assertEqual(ride.version, before.version + 2)

	def test_join_rejects_host_and_existing_member(self):
		with self.assertRaises(AlreadyMemberError):
			join_ride(self.ride.id, self.host)

		join_ride(self.ride.id, self.bob)
		with self.assertRaises(AlreadyMemberError):
			join_ride(self.ride.id, self.bob)

	def test_female_only_ride_rejects_male_rider(self):
		ride = publish(self.host, is_female_only=True)
		version = ride.version

		with self.assertRaises(IneligibleError):
			join_ride(ride.id, self.bob)

		ride.refresh_from_db()
		self.assertEqual(ride.member_ids(), set())
		self.assertEqual(ride.version, version)

		join_ride(ride.id, self.alice)
		self.assertEqual(ride.member_ids(), {self.alice.id})

	@override_settings(RIDE_VEHICLE_CAPACITY={'car': 2, 'bike': 1, 'cng': 3})
	def test_two_seats_three_joiners(self):
		ride = publish(self.host)

		join_ride(ride.id, self.alice)
		result = join_ride(ride.id, self.bob)
		self.assertEqual(result.ride.status, Ride.STATUS_FULL)
		self.assertEqual(result.extra['seats_available'], 0)

		with self.assertRaises(RideFullError):
			join_ride(ride.id, self.carol)

		leave_ride(ride.id, self.alice)
		ride = get_ride(ride.id)
		self.assertEqual(ride.status, Ride.STATUS_OPEN)

		join_ride(ride.id, self.carol)
		ride = get_ride(ride.id)
		self.assertEqual(ride.member_ids(), {self.bob.id, self.carol.id})
		self.assertEqual(ride.status, Ride.STATUS_FULL)

	def test_join_closed_ride(self):
		backdate(self.ride)
		with self.assertRaises(RideClosedError):
			join_ride(self.ride.id, self.bob)

	def test_lost_race_retries_and_sees_full_ride(self):
		ride = publish(self.host, vehicle_type='bike')
		real_check = membership._ensure_can_join
		calls = []

		def check_then_compete(current, user):
			count = real_check(current, user)
			if not calls:
				# A competing join commits after our read but before our write
				RideMembership.objects.create(ride=current, user=self.alice)
				Ride.objects.filter(pk=current.pk).update(
					status=Ride.STATUS_FULL, version=current.version + 1
				)
			calls.append(user.id)
			return count

		with patch.object(membership, '_ensure_can_join', side_effect=check_then_compete):
			with self.assertRaises(RideFullError):
				join_ride(ride.id, self.bob)

		self.assertEqual(len(calls), 1)
		ride.refresh_from_db()
		self.assertEqual(ride.member_ids(), {self.alice.id})
		self.assertEqual(ride.status, Ride.STATUS_FULL)

	@override_settings(RIDE_JOIN_CONFLICT_RETRIES=3)
	@patch('services.ride_management.membership.compare_and_set', return_value=False)
	def test_join_gives_up_after_retries(self, mock_cas):
		with self.assertRaises(ConflictError):
			join_ride(self.ride.id, self.bob)

		self.assertEqual(mock_cas.call_count, 4)
		self.assertEqual(self.ride.member_ids(), set())

	@patch('services.ride_management.membership.compare_and_set', return_value=False)
	def test_leave_conflict_is_not_retried(self, mock_cas):
		RideMembership.objects.create(ride=self.ride, user=self.bob)

		with self.assertRaises(ConflictError):
			leave_ride(self.ride.id, self.bob)

		mock_cas.assert_called_once()
		self.assertTrue(self.ride.is_member(self.bob.id))

	def test_leave_rules(self):
		with self.assertRaises(ForbiddenError):
			leave_ride(self.ride.id, self.host)

		with self.assertRaises(NotMemberError):
			leave_ride(self.ride.id, self.bob)

		join_ride(self.ride.id, self.bob)
		backdate(self.ride)
		with self.assertRaises(RideClosedError):
			leave_ride(self.ride.id, self.bob)

	def test_join_by_code_is_case_insensitive(self):
		result = join_by_code(self.ride.join_code.lower(), self.bob)
		self.assertEqual(result.ride.id, self.ride.id)
		self.assertTrue(self.ride.is_member(self.bob.id))

	def test_join_by_code_unknown_or_inactive(self):
		with self.assertRaises(RideNotFoundError):
			join_by_code('ZZZZZZ', self.bob)

		code = self.ride.join_code
		delete_ride(self.ride.id, self.host)
		with self.assertRaises(RideNotFoundError):
			join_by_code(code, self.bob)

	def test_host_delete_cancels_and_removes_members(self):
		join_ride(self.ride.id, self.alice)
		join_ride(self.ride.id, self.bob)

		result = delete_ride(self.ride.id, self.host)

		self.assertEqual(result.extra['removed_members'], 2)
		ride = get_ride(self.ride.id)
		self.assertEqual(ride.status, Ride.STATUS_CANCELLED)
		self.assertIsNone(ride.join_code)
		self.assertEqual(ride.member_ids(), set())
		self.assertEqual(sorted(ride.removed_member_ids), sorted([self.alice.id, self.bob.id]))

		with self.assertRaises(RideClosedError):
			join_ride(self.ride.id, self.carol)
		with self.assertRaises(RideClosedError):
			delete_ride(self.ride.id, self.host)

	def test_only_host_can_delete(self):
		join_ride(self.ride.id, self.bob)
		with self.assertRaises(ForbiddenError):
			delete_ride(self.ride.id, self.bob)

	@patch('services.ride_management.membership.notify_membership_changed')
	def test_join_notifies_after_commit(self, mock_notify):
		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			join_ride(self.ride.id, self.bob)

		self.assertEqual(len(callbacks), 1)
		mock_notify.assert_called_once()
		self.assertEqual(mock_notify.call_args[0][1:], ('joined', self.bob.id))

	@patch('services.ride_management.membership.notify_ride_cancelled')
	def test_delete_notifies_after_commit(self, mock_notify):
		with self.captureOnCommitCallbacks(execute=True):
			delete_ride(self.ride.id, self.host)

		mock_notify.assert_called_once()

	@patch('services.ride_management.membership.notify_membership_changed')
	def test_failed_join_does_not_notify(self, mock_notify):
		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			with self.assertRaises(AlreadyMemberError):
				join_ride(self.ride.id, self.host)

		self.assertEqual(callbacks, [])
		mock_notify.assert_not_called()


@unittest.skipIf(
	connection.vendor == 'sqlite' and connection.is_in_memory_db(),
	'threads need a shared database',
)
class ConcurrentJoinTests(TransactionTestCase):
	def join_all_at_once(self, ride, riders):
		outcomes = []
		barrier = threading.Barrier(len(riders))

		def attempt(user):
			try:
				barrier.wait()
				join_ride(ride.id, user)
				outcomes.append('joined')
			except (RideFullError, ConflictError) as exc:
				outcomes.append(exc.error_code)
			except OperationalError as exc:
				outcomes.append(f'db: {exc}')
			finally:
				connection.close()

		threads = [threading.Thread(target=attempt, args=(user,)) for user in riders]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()
		return outcomes

	def test_last_seat_goes_to_exactly_one_rider(self):
		host = make_user('host')
		riders = [make_user(f'rider{i}') for i in range(6)]
		ride = publish(host, vehicle_type='cng')

		outcomes = self.join_all_at_once(ride, riders)

		ride.refresh_from_db()
		self.assertEqual(RideMembership.objects.filter(ride=ride).count(), 3)
		self.assertEqual(sorted(outcomes), ['full'] * 3 + ['joined'] * 3)
		self.assertEqual(ride.status, Ride.STATUS_FULL)

	@override_settings(RIDE_VEHICLE_CAPACITY={'car': 2, 'bike': 1, 'cng': 3})
	def test_two_seats_three_parallel_joiners(self):
		host = make_user('host')
		riders = [make_user(name) for name in ('alice', 'bob', 'carol')]
		ride = publish(host)

		outcomes = self.join_all_at_once(ride, riders)

		ride.refresh_from_db()
		self.assertEqual(sorted(outcomes), ['full', 'joined', 'joined'])
		self.assertEqual(len(ride.member_ids()), 2)
		self.assertEqual(ride.status, Ride.STATUS_FULL)


class RideApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.host = make_user('host', gender='female')
		self.rider = make_user('rider')
		self.client.force_authenticate(user=self.host)

	def _create(self, **overrides):
		body = {
			'vehicle_type': 'car',
			'pickup_name': 'Campus Gate 1',
			'destination_name': 'Banani 11',
			'departure_time': (timezone.now() + timedelta(hours=1)).isoformat(),
			'total_fare': '250.00',
		}
		body.update(overrides)
		return self.client.post('/api/rides/', body, format='json')

	def test_requires_authentication(self):
		response = APIClient().get('/api/rides/')
		self.assertEqual(response.status_code, 401)

	def test_create_and_list(self):
		response = self._create()

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['seat_capacity'], 3)
		self.assertEqual(response.data['seats_available'], 3)
		self.assertIsNotNone(response.data['join_code'])

		self.client.force_authenticate(user=self.rider)
		response = self.client.get('/api/rides/', {'vehicle_type': 'car'})
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		# Only the host and members see the code
		self.assertIsNone(response.data['rides'][0]['join_code'])

	def test_create_in_the_past_is_a_validation_error(self):
		response = self._create(departure_time=(timezone.now() - timedelta(hours=1)).isoformat())

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['code'], 'validation_error')

	def test_join_leave_and_delete_endpoints(self):
		ride_id = self._create().data['id']

		self.client.force_authenticate(user=self.rider)
		response = self.client.post(f'/api/rides/{ride_id}/join/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['seats_available'], 2)

		response = self.client.post(f'/api/rides/{ride_id}/join/')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'already_member')

		response = self.client.delete(f'/api/rides/{ride_id}/')
		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['code'], 'forbidden')

		response = self.client.post(f'/api/rides/{ride_id}/leave/')
		self.assertEqual(response.status_code, 200)

		self.client.force_authenticate(user=self.host)
		response = self.client.delete(f'/api/rides/{ride_id}/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], 'cancelled')

	def test_join_by_code_endpoint(self):
		code = self._create().data['join_code']

		self.client.force_authenticate(user=self.rider)
		response = self.client.post('/api/rides/join-by-code/', {'code': code.lower()}, format='json')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['join_code'], code)

	def test_female_only_join_is_rejected(self):
		ride_id = self._create(is_female_only=True).data['id']

		self.client.force_authenticate(user=self.rider)
		response = self.client.post(f'/api/rides/{ride_id}/join/')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'ineligible')

	def test_missing_ride_is_404(self):
		response = self.client.get('/api/rides/424242/')
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['code'], 'not_found')

	def test_my_rides_and_vehicle_types(self):
		self._create()

		response = self.client.get('/api/rides/mine/')
		self.assertEqual(response.data['count'], 1)

		response = self.client.get('/api/rides/vehicle-types/')
		seats = {v['id']: v['max_seats'] for v in response.data['vehicle_types']}
		self.assertEqual(seats, {'car': 3, 'bike': 1, 'cng': 3})
