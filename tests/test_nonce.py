"""Tests for nonce/timestamp generation."""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from dta4hana import _nonce
from dta4hana._nonce import NonceSource, SequenceNonceSource, SystemNonceSource


class TestSystemNonceSource:
    def test_satisfies_protocol(self):
        assert isinstance(SystemNonceSource(), NonceSource)

    def test_returns_uuid4_and_epoch_seconds(self):
        before = int(time.time())
        nonce, timestamp = SystemNonceSource().fresh()
        after = int(time.time())
        assert isinstance(nonce, uuid.UUID)
        assert nonce.version == 4
        assert isinstance(timestamp, int)
        assert before <= timestamp <= after

    def test_timestamp_follows_clock(self):
        with patch("dta4hana._nonce.time.time", return_value=1700000000.9):
            _, timestamp = SystemNonceSource().fresh()
        assert timestamp == 1700000000

    def test_no_collisions_over_large_sample(self):
        source = SystemNonceSource()
        nonces = {source.fresh()[0] for _ in range(100_000)}
        assert len(nonces) == 100_000

    def test_no_collisions_across_threads(self):
        source = SystemNonceSource()
        with ThreadPoolExecutor(max_workers=8) as pool:
            pairs = list(pool.map(lambda _: source.fresh(), range(10_000)))
        assert len({nonce for nonce, _ in pairs}) == 10_000


class TestModuleFresh:
    def test_fresh_draws_new_nonce_each_call(self):
        first, _ = _nonce.fresh()
        second, _ = _nonce.fresh()
        assert first != second


class TestSequenceNonceSource:
    def test_replays_in_order(self):
        pairs = [(uuid.UUID(int=1), 10), (uuid.UUID(int=2), 20)]
        source = SequenceNonceSource(pairs)
        assert isinstance(source, NonceSource)
        assert source.fresh() == pairs[0]
        assert source.fresh() == pairs[1]

    def test_exhaustion_raises(self):
        source = SequenceNonceSource([(uuid.UUID(int=1), 10)])
        source.fresh()
        with pytest.raises(RuntimeError, match="exhausted"):
            source.fresh()
