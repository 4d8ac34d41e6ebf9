from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIClient


class HealthCheckTests(TestCase):
    @patch('rideshare_backend.views.redis.Redis')
    def test_healthy(self, mock_redis):
        response = APIClient().get('/health/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'healthy')
        mock_redis.return_value.ping.assert_called_once()

    @patch('rideshare_backend.views.redis.Redis')
    def test_redis_down(self, mock_redis):
        mock_redis.return_value.ping.side_effect = ConnectionError('refused')

        response = APIClient().get('/health/')

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data['services']['redis'], 'unhealthy: refused')
        self.assertEqual(response.data['services']['database'], 'healthy')
