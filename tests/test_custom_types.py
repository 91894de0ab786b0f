"""Tests for custom Pydantic types."""

import unittest

from pydantic import BaseModel, ValidationError

from chat_search.custom_types import HOSTNAME, INDEX_NAME, WAIT_FOR_ACTIVE_SHARDS


class HostModel(BaseModel):
    host: HOSTNAME


class ShardsModel(BaseModel):
    wait_for_active_shards: WAIT_FOR_ACTIVE_SHARDS


class IndexModel(BaseModel):
    index: INDEX_NAME


class HostnameTestSuite(unittest.TestCase):
    def test_valid_hosts(self):
        for host in [
            "localhost",
            "opensearch",
            "opensearch:9200",
            "search.example.com",
            "search-1.example.com:443",
            "127.0.0.1",
            "10.0.0.12:9200",
        ]:
            with self.subTest(host=host):
                self.assertEqual(HostModel(host=host).host, host)

    def test_invalid_hosts(self):
        for host in [
            "",
            "http://opensearch:9200",
            "opensearch:",
            "opensearch:port",
            "-opensearch",
            "search example.com",
            "opensearch/path",
        ]:
            with self.subTest(host=host):
                with self.assertRaises(ValidationError):
                    HostModel(host=host)


class WaitForActiveShardsTestSuite(unittest.TestCase):
    def test_valid_values(self):
        for value in ["all", "0", "1", "12"]:
            with self.subTest(value=value):
                model = ShardsModel(wait_for_active_shards=value)
                self.assertEqual(model.wait_for_active_shards, value)

    def test_invalid_values(self):
        for value in ["", "any", "-1", "1.5", "ALL"]:
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    ShardsModel(wait_for_active_shards=value)


class IndexNameTestSuite(unittest.TestCase):
    def test_valid_names(self):
        for name in ["mails", "mails-2024", "mail_archive.v2", "0mails"]:
            with self.subTest(name=name):
                self.assertEqual(IndexModel(index=name).index, name)

    def test_invalid_names(self):
        for name in ["", "Mails", "_mails", "-mails", "mails/2024", "m" * 256]:
            with self.subTest(name=name):
                with self.assertRaises(ValidationError):
                    IndexModel(index=name)
