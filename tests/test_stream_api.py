#!/usr/bin/env python3
"""
Tests for the stream API client and the stream descriptor
"""
import unittest
from unittest import mock

import requests

from stream_api import (
    GET_STREAM_PATH,
    PROXY_STREAM_PATH,
    InvalidStreamError,
    StreamAPIClient,
    StreamAPIError,
    StreamDescriptor,
    build_stream_url,
)


STREAM_PAYLOAD = {
    'success': True,
    'video_id': 'abc',
    'm3u8_url': 'https://x/y.m3u8',
    'headers': {'Referer': 'r', 'User-Agent': 'u', 'Origin': 'o'},
}


class TestStreamDescriptor(unittest.TestCase):
    """Test descriptor validation and the widget source"""

    def test_from_json(self):
        stream = StreamDescriptor.from_json(STREAM_PAYLOAD)
        self.assertTrue(stream.success)
        self.assertEqual(stream.video_id, 'abc')
        self.assertEqual(stream.m3u8_url, 'https://x/y.m3u8')
        self.assertEqual(stream.referer, 'r')
        self.assertEqual(stream.user_agent, 'u')

    def test_source_only_carries_required_headers(self):
        """Test that the widget source keeps Referer and User-Agent only"""
        source = StreamDescriptor.from_json(STREAM_PAYLOAD).source()
        self.assertEqual(source, {'uri': 'https://x/y.m3u8', 'headers': {'Referer': 'r', 'User-Agent': 'u'}})

    def test_rejects_unplayable_payloads(self):
        """Test that successful payloads breaking the invariant are rejected"""
        broken = [
            dict(STREAM_PAYLOAD, m3u8_url=''),
            {k: v for k, v in STREAM_PAYLOAD.items() if k != 'm3u8_url'},
            dict(STREAM_PAYLOAD, headers={'Referer': 'r'}),
            dict(STREAM_PAYLOAD, headers={'Referer': '', 'User-Agent': 'u'}),
            dict(STREAM_PAYLOAD, headers=None),
            dict(STREAM_PAYLOAD, headers='r'),
            {'success': False, 'error': 'nope'},
            ['not', 'a', 'dict'],
        ]
        for payload in broken:
            with self.subTest(payload=payload):
                with self.assertRaises(InvalidStreamError):
                    StreamDescriptor.from_json(payload)


class TestStreamURL(unittest.TestCase):
    """Test upstream URL construction"""

    def test_title_encoded(self):
        url = build_stream_url('https://api.example.com/', 'the office/s01 e01')
        self.assertEqual(url, 'https://api.example.com/api/get-stream?title=the%20office%2Fs01%20e01')

    def test_relay_path(self):
        client = StreamAPIClient(base_url='http://localhost:3000', path=PROXY_STREAM_PATH, session=mock.Mock())
        self.assertEqual(client.url_for('a.b'), 'http://localhost:3000/api/proxy-get-stream?title=a.b')


class TestStreamAPIClient(unittest.TestCase):
    """Test get_stream against a mocked session"""

    def setUp(self):
        self.session = mock.Mock()
        self.client = StreamAPIClient(base_url='https://api.example.com', timeout=5, session=self.session)

    def test_returns_payload_untouched(self):
        self.session.get.return_value = mock.Mock(status_code=200, **{'json.return_value': STREAM_PAYLOAD})

        self.assertEqual(self.client.get_stream('wednesday.s01e03'), STREAM_PAYLOAD)
        self.session.get.assert_called_once_with(
            'https://api.example.com' + GET_STREAM_PATH + '?title=wednesday.s01e03', timeout=5)

    def test_returns_failure_payload(self):
        payload = {'success': False, 'error': 'Title not found'}
        self.session.get.return_value = mock.Mock(status_code=404, **{'json.return_value': payload})

        self.assertEqual(self.client.get_stream('x'), payload)

    def test_wraps_transport_errors(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError('Connection refused')

        with self.assertRaises(StreamAPIError) as ctx:
            self.client.get_stream('x')
        self.assertEqual(str(ctx.exception), 'Connection refused')

    def test_wraps_non_json_body(self):
        self.session.get.return_value = mock.Mock(status_code=502, **{'json.side_effect': ValueError('Expecting value')})

        with self.assertRaises(StreamAPIError) as ctx:
            self.client.get_stream('x')
        self.assertEqual(str(ctx.exception), 'Expecting value')

    def test_default_timeout_is_transport_default(self):
        client = StreamAPIClient(base_url='https://api.example.com', session=self.session)
        self.assertIsNone(client.timeout)


if __name__ == '__main__':
    unittest.main()
