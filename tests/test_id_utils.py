import pytest

from realtime_record_store.exceptions import IdSpaceExhaustedError, MalformedKeyError
from realtime_record_store.id_utils import (
    ID_ALPHABET,
    ID_LENGTH,
    MAX_TIME,
    IdGenerator,
    composite_key,
    decode_time,
    encode_time,
    split_composite_key,
)


class TestAlphabet:
    def test_sorted_like_ascii(self):
        assert list(ID_ALPHABET) == sorted(ID_ALPHABET)

    def test_has_64_distinct_symbols(self):
        assert len(set(ID_ALPHABET)) == 64


class TestEncodeTime:
    def test_zero(self):
        assert encode_time(0) == "00000000"

    def test_known_value(self):
        # 1000 = 15 * 64 + 40
        assert encode_time(1000) == "000000Fd"

    def test_max(self):
        assert encode_time(MAX_TIME) == "~" * 8

    def test_too_large_raises(self):
        with pytest.raises(IdSpaceExhaustedError):
            encode_time(MAX_TIME + 1)

    def test_negative_raises(self):
        with pytest.raises(IdSpaceExhaustedError):
            encode_time(-1)

    def test_decode_recovers_time(self):
        gen = IdGenerator()
        assert decode_time(gen.generate(1_700_000_000_123)) == 1_700_000_000_123

    def test_decode_rejects_foreign_characters(self):
        with pytest.raises(ValueError):
            decode_time("0000-000")


class TestIdGenerator:
    def test_length_and_alphabet(self):
        gen = IdGenerator()
        for t in (0, 1, 1000, 1_700_000_000_000, MAX_TIME):
            identifier = gen.generate(t)
            assert len(identifier) == ID_LENGTH
            assert set(identifier) <= set(ID_ALPHABET)

    def test_defaults_to_wall_clock(self):
        identifier = IdGenerator().generate()
        assert decode_time(identifier) > 1_600_000_000_000

    def test_same_millisecond_increments_suffix(self, fixed_rng):
        gen = IdGenerator(rng=fixed_rng(0))

        first = gen.generate(1000)
        second = gen.generate(1000)

        assert first == "000000Fd" + "0" * 12
        assert second == "000000Fd" + "0" * 11 + "1"

    def test_increment_carries(self):
        gen = IdGenerator()
        gen.last_time = 1000
        gen.last_suffix = [0] * 10 + [5, 63]

        identifier = gen.generate(1000)

        assert identifier[-2:] == "60"
        assert gen.last_suffix == [0] * 10 + [6, 0]

    def test_same_millisecond_strictly_increasing(self):
        gen = IdGenerator()
        ids = [gen.generate(42_000) for _ in range(500)]

        assert all(a < b for a, b in zip(ids, ids[1:]))
        assert {i[:8] for i in ids} == {encode_time(42_000)}

    def test_later_millisecond_sorts_after_regardless_of_suffix(self, fixed_rng):
        high = IdGenerator(rng=fixed_rng(63))
        low = IdGenerator(rng=fixed_rng(0))

        for t in (0, 63, 64, 4095, 1_700_000_000_000):
            assert high.generate(t) < low.generate(t + 1)

    def test_new_millisecond_redraws_suffix(self, fixed_rng):
        gen = IdGenerator(rng=fixed_rng(7))
        gen.generate(1000)
        gen.generate(1000)

        identifier = gen.generate(1001)

        assert identifier[8:] == ID_ALPHABET[7] * 12
        assert gen.last_time == 1001

    def test_suffix_overflow_raises(self, fixed_rng):
        gen = IdGenerator(rng=fixed_rng(63))
        gen.generate(1000)

        with pytest.raises(IdSpaceExhaustedError):
            gen.generate(1000)

    def test_instances_are_independent(self, fixed_rng):
        a = IdGenerator(rng=fixed_rng(0))
        b = IdGenerator(rng=fixed_rng(0))
        a.generate(1000)

        assert b.generate(1000) == "000000Fd" + "0" * 12

    def test_reset(self):
        gen = IdGenerator()
        gen.generate(1000)

        gen.reset()

        assert gen.last_time is None
        assert gen.last_suffix == [0] * 12

    def test_first_id_at_epoch_draws_suffix(self, fixed_rng):
        gen = IdGenerator(rng=fixed_rng(9))

        assert gen.generate(0) == "00000000" + "9" * 12

    def test_reset_then_same_millisecond_draws_suffix(self, fixed_rng):
        gen = IdGenerator(rng=fixed_rng(9))
        gen.generate(0)

        gen.reset()

        assert gen.generate(0) == "00000000" + "9" * 12


class TestCompositeKey:
    def test_build(self):
        assert composite_key("chat", "abc") == "chat!abc"

    def test_round_trip(self):
        identifier = IdGenerator().generate(1000)
        key = composite_key("participant", identifier)

        assert composite_key(*split_composite_key(key)) == key

    def test_id_may_contain_separator(self):
        assert split_composite_key("chat!a!b") == ("chat", "a!b")

    def test_type_with_separator_rejected(self):
        with pytest.raises(MalformedKeyError):
            composite_key("ch!at", "abc")

    @pytest.mark.parametrize("key", ["chat", "!abc", "chat!", ""])
    def test_split_malformed(self, key):
        with pytest.raises(MalformedKeyError):
            split_composite_key(key)
