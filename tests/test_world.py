"""Tests for the World wire format."""

from __future__ import annotations

import json

import pytest

from spawner.errors import DecodeError
from spawner.world import World, decode_world, decode_worlds, encode_worlds


def _world(**kwargs) -> World:
    fields = {
        "id": "run-abc",
        "galaxy": "c1",
        "addr": "203.0.113.7:8080",
        "spawner": "ecs.fargate-v1",
        "details": {"arn": "run-abc", "cluster_arn": "c1", "addr": "203.0.113.7:8080"},
    }
    fields.update(kwargs)
    return World(**fields)


class TestRoundTrip:
    def test_round_trip(self):
        world = _world()
        assert decode_world(world.to_json()) == world

    def test_round_trip_empty_addr(self):
        world = _world(addr="", details=None)
        decoded = decode_world(world.to_json().encode())
        assert decoded == world
        assert decoded.addr == ""

    def test_field_order_is_stable(self):
        keys = list(json.loads(_world().to_json()))
        assert keys == ["id", "galaxy", "addr", "spawner", "details"]

    def test_encoding_is_byte_identical(self):
        assert _world().to_json() == _world().to_json()
        assert decode_world(_world().to_json()).to_json() == _world().to_json()

    def test_defaults(self):
        world = decode_world('{"id": "run-1"}')
        assert world.galaxy == ""
        assert world.addr == ""
        assert world.spawner == ""
        assert world.details is None


class TestDecodeErrors:
    @pytest.mark.parametrize("payload", ["", "nope", "[]", "{}", '{"id": 7}'])
    def test_invalid(self, payload):
        with pytest.raises(DecodeError, match="decode world"):
            decode_world(payload)


class TestArrays:
    def test_encode_single(self):
        out = encode_worlds(_world())
        assert out.endswith("]\n")
        assert json.loads(out) == [json.loads(_world().to_json())]

    def test_encode_empty(self):
        assert encode_worlds() == "[]\n"

    def test_round_trip_many(self):
        worlds = [_world(id="a"), _world(id="b", addr="")]
        assert decode_worlds(encode_worlds(*worlds)) == worlds

    @pytest.mark.parametrize("payload", ["{", '{"id": "a"}', '[{"galaxy": "c1"}]'])
    def test_decode_worlds_invalid(self, payload):
        with pytest.raises(DecodeError):
            decode_worlds(payload)
