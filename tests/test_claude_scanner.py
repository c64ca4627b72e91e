"""
CardScan — Vision Scanner Tests

All Anthropic calls go through a per-test FakeAnthropic (see tests/fakes.py);
no real API requests are made.
"""

from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from src.config import settings
from src.exceptions import ScannerConfigError
from src.scanner.claude import PARSE_ERROR_MESSAGE, CardScanner
from tests.fakes import FakeAnthropic


class TestScanCard:

    @pytest.mark.asyncio
    async def test_scan_card_successfully(
        self, fake_anthropic: FakeAnthropic, reference_date: date
    ) -> None:
        scanner = CardScanner(client=fake_anthropic)

        outcome = await scanner.scan_card("base64_image_data", reference_date=reference_date)

        assert outcome.success is True
        assert outcome.error is None
        assert outcome.card.player == "Patrick Mahomes"
        assert outcome.card.year == 2020
        assert outcome.card.set_name == "Panini Prizm"

    @pytest.mark.asyncio
    async def test_includes_token_usage(self, fake_anthropic: FakeAnthropic) -> None:
        outcome = await CardScanner(client=fake_anthropic).scan_card("base64_image_data")

        assert outcome.usage is not None
        assert outcome.usage.input_tokens == 1250
        assert outcome.usage.output_tokens == 180

    @pytest.mark.asyncio
    async def test_search_string_filled_in(self, fake_anthropic: FakeAnthropic) -> None:
        outcome = await CardScanner(client=fake_anthropic).scan_card("base64_image_data")
        assert outcome.card.ebay_search_string == "2020 Panini Prizm Patrick Mahomes #127"

    @pytest.mark.asyncio
    async def test_model_search_string_kept(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({"player": "Joe Burrow", "ebay_search_string": "Burrow Prizm RC"})
        outcome = await CardScanner(client=fake_anthropic).scan_card("img")
        assert outcome.card.ebay_search_string == "Burrow Prizm RC"

    @pytest.mark.asyncio
    async def test_front_only_sends_one_image(self, fake_anthropic: FakeAnthropic) -> None:
        await CardScanner(client=fake_anthropic).scan_card("front_image")

        content = fake_anthropic.last_call["messages"][0]["content"]
        assert content[0]["type"] == "text"
        assert [c for c in content if c["type"] == "image"] == [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": "image/jpeg", "data": "front_image"},
            }
        ]

    @pytest.mark.asyncio
    async def test_front_and_back_images(self, fake_anthropic: FakeAnthropic) -> None:
        outcome = await CardScanner(client=fake_anthropic).scan_card(
            "front_image", "data:image/png;base64,back_image"
        )

        assert outcome.success is True
        images = [
            c for c in fake_anthropic.last_call["messages"][0]["content"] if c["type"] == "image"
        ]
        assert len(images) == 2
        assert images[1]["source"]["media_type"] == "image/png"
        assert images[1]["source"]["data"] == "back_image"

    @pytest.mark.asyncio
    async def test_model_and_max_tokens_from_settings(self, fake_anthropic: FakeAnthropic) -> None:
        await CardScanner(client=fake_anthropic).scan_card("img")

        assert fake_anthropic.last_call["model"] == settings.SCAN_MODEL_ID
        assert fake_anthropic.last_call["max_tokens"] == settings.SCAN_MAX_TOKENS

    @pytest.mark.asyncio
    async def test_model_override(self, fake_anthropic: FakeAnthropic) -> None:
        scanner = CardScanner(client=fake_anthropic, model="claude-test", max_tokens=2048)
        await scanner.scan_card("img")

        assert fake_anthropic.last_call["model"] == "claude-test"
        assert fake_anthropic.last_call["max_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_api_error_handled_gracefully(
        self, fake_anthropic: FakeAnthropic, reference_date: date
    ) -> None:
        fake_anthropic.set_failure(RuntimeError("API rate limit exceeded"))

        outcome = await CardScanner(client=fake_anthropic).scan_card(
            "base64_image_data", reference_date=reference_date
        )

        assert outcome.success is False
        assert outcome.error == "API rate limit exceeded"
        assert outcome.usage is None
        assert outcome.card.parallel == "Base"
        assert outcome.card.sport == "Football"
        assert outcome.card.year == 2026

    @pytest.mark.asyncio
    async def test_unparseable_reply_returns_empty_card(
        self, fake_anthropic: FakeAnthropic, reference_date: date
    ) -> None:
        fake_anthropic.set_reply("I could not read this card, sorry.")

        outcome = await CardScanner(client=fake_anthropic).scan_card(
            "img", reference_date=reference_date
        )

        assert outcome.success is False
        assert outcome.error == PARSE_ERROR_MESSAGE
        assert outcome.card.player == ""
        assert outcome.card.condition == "Near Mint"

    @pytest.mark.asyncio
    async def test_fenced_reply_parsed(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply('```json\n{"player": "Josh Allen", "year": 2018}\n```')

        outcome = await CardScanner(client=fake_anthropic).scan_card("img")

        assert outcome.success is True
        assert outcome.card.player == "Josh Allen"
        assert outcome.card.year == 2018

    @pytest.mark.asyncio
    async def test_text_block_found_after_non_text_block(
        self, fake_anthropic: FakeAnthropic
    ) -> None:
        fake_anthropic.set_content([
            SimpleNamespace(type="thinking", thinking="Looks like a Prizm base."),
            SimpleNamespace(type="text", text='{"player": "Josh Allen", "year": 2018}'),
        ])

        outcome = await CardScanner(client=fake_anthropic).scan_card("img")

        assert outcome.success is True
        assert outcome.card.player == "Josh Allen"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "blocks",
        [[], [SimpleNamespace(type="tool_use", id="t1", name="lookup", input={})]],
    )
    async def test_reply_without_text_is_parse_error(
        self, fake_anthropic: FakeAnthropic, reference_date: date, blocks: list
    ) -> None:
        fake_anthropic.set_content(blocks)

        outcome = await CardScanner(client=fake_anthropic).scan_card(
            "img", reference_date=reference_date
        )

        assert outcome.success is False
        assert outcome.error == PARSE_ERROR_MESSAGE
        assert outcome.card.year == 2026

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_year", ["1e400", "-1e400"])
    async def test_overflowing_year_falls_back(
        self, fake_anthropic: FakeAnthropic, reference_date: date, raw_year: str
    ) -> None:
        fake_anthropic.set_reply('{"player": "Josh Allen", "year": %s}' % raw_year)

        outcome = await CardScanner(client=fake_anthropic).scan_card(
            "img", reference_date=reference_date
        )

        assert outcome.success is True
        assert outcome.card.year == 2026

    @pytest.mark.asyncio
    async def test_nan_literal_is_parse_error(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply('{"player": "Josh Allen", "year": NaN}')

        outcome = await CardScanner(client=fake_anthropic).scan_card("img")

        assert outcome.success is False
        assert outcome.error == PARSE_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_graded_card_data(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({
            "player": "Tom Brady",
            "is_graded": True,
            "grading_company": "BGS",
            "grade": "9.5",
        })

        outcome = await CardScanner(client=fake_anthropic).scan_card("graded_card_image")

        assert outcome.success is True
        assert outcome.card.is_graded is True
        assert outcome.card.grading_company == "BGS"
        assert outcome.card.grade == "9.5"

    @pytest.mark.asyncio
    async def test_autographed_numbered_card_data(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({
            "player": "Justin Herbert",
            "is_autographed": True,
            "numbered": True,
            "serial_number": "25",
            "numbered_to": "99",
        })

        outcome = await CardScanner(client=fake_anthropic).scan_card("auto_card_image")

        assert outcome.card.is_autographed is True
        assert outcome.card.numbered == "true"
        assert outcome.card.serial_number == "25"
        assert outcome.card.numbered_to == "99"

    @pytest.mark.asyncio
    async def test_call_log_is_per_client(self) -> None:
        first, second = FakeAnthropic(), FakeAnthropic()

        await CardScanner(client=first).scan_card("a")
        await CardScanner(client=first).scan_card("b")
        await CardScanner(client=second).scan_card("c")

        assert first.call_count == 2
        assert second.call_count == 1


class TestScannerConstruction:

    def test_missing_api_key_raises(self) -> None:
        with patch.object(settings, "ANTHROPIC_API_KEY", ""):
            with pytest.raises(ScannerConfigError):
                CardScanner()

    def test_builds_anthropic_client_from_settings(self) -> None:
        with patch.object(settings, "ANTHROPIC_API_KEY", "sk-test"), patch(
            "src.scanner.claude.anthropic.AsyncAnthropic"
        ) as client_cls:
            CardScanner()

        client_cls.assert_called_once_with(api_key="sk-test")


class TestMultiSlabDetection:

    @pytest.mark.asyncio
    async def test_detect_multiple_slabs(
        self, fake_anthropic: FakeAnthropic, reference_date: date
    ) -> None:
        fake_anthropic.set_reply({"cards": [
            {"player": "Patrick Mahomes", "cert_number": "12345678", "grading_company": "PSA", "grade": "10"},
            {"player": "Josh Allen", "cert_number": "87654321", "grading_company": "PSA", "grade": "9"},
        ]})

        cards = await CardScanner(client=fake_anthropic).detect_slabs(
            "multi_slab_image", reference_date=reference_date
        )

        assert len(cards) == 2
        assert cards[0].player == "Patrick Mahomes"
        assert cards[1].player == "Josh Allen"
        assert all(card.is_graded for card in cards)
        assert cards[0].ebay_search_string == "2026 Patrick Mahomes PSA 10"
        assert fake_anthropic.last_call["max_tokens"] == settings.MULTI_SLAB_MAX_TOKENS

    @pytest.mark.asyncio
    async def test_cert_numbers_per_slab(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({"cards": [
            {"player": "Card 1", "cert_number": "11111111"},
            {"player": "Card 2", "cert_number": "22222222"},
            {"player": "Card 3", "cert_number": "33333333"},
        ]})

        cards = await CardScanner(client=fake_anthropic).detect_slabs("img")

        assert [card.cert_number for card in cards] == ["11111111", "22222222", "33333333"]

    @pytest.mark.asyncio
    async def test_slab_marked_ungraded_is_respected(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({"cards": [{"player": "Raw Card", "is_graded": False}]})
        cards = await CardScanner(client=fake_anthropic).detect_slabs("img")
        assert cards[0].is_graded is False

    @pytest.mark.asyncio
    async def test_overflowing_year_in_slab_falls_back(
        self, fake_anthropic: FakeAnthropic, reference_date: date
    ) -> None:
        fake_anthropic.set_reply('{"cards": [{"player": "Tom Brady", "year": 1e400}]}')

        cards = await CardScanner(client=fake_anthropic).detect_slabs(
            "img", reference_date=reference_date
        )

        assert [card.year for card in cards] == [2026]

    @pytest.mark.asyncio
    async def test_malformed_reply_returns_empty_list(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply('{"slabs": "not a list"}')
        assert await CardScanner(client=fake_anthropic).detect_slabs("img") == []

    @pytest.mark.asyncio
    async def test_api_error_returns_empty_list(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_failure(RuntimeError("overloaded"))
        assert await CardScanner(client=fake_anthropic).detect_slabs("img") == []


class TestSlabPositions:

    @pytest.mark.asyncio
    async def test_detect_slab_positions(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({"slabs": [
            {"boundingBox": {"x": 10, "y": 10, "width": 30, "height": 40}, "gradingCompany": "PSA"},
            {"boundingBox": {"x": 50, "y": 10, "width": 30, "height": 40}, "gradingCompany": "BGS"},
        ]})

        positions = await CardScanner(client=fake_anthropic).detect_slab_positions("img")

        assert len(positions) == 2
        assert positions[0].bounding_box.x == 10
        assert positions[0].grading_company == "PSA"
        assert positions[1].bounding_box.x == 50
        assert positions[1].grading_company == "BGS"

    @pytest.mark.asyncio
    async def test_invalid_entries_skipped(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({"slabs": [
            {"gradingCompany": "PSA"},
            {"boundingBox": {"x": 5, "y": 5, "width": 20, "height": 30}},
        ]})

        positions = await CardScanner(client=fake_anthropic).detect_slab_positions("img")

        assert len(positions) == 1
        assert positions[0].grading_company is None

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply("no slabs here")
        assert await CardScanner(client=fake_anthropic).detect_slab_positions("img") == []


class TestCertNumberExtraction:

    @pytest.mark.asyncio
    async def test_extract_cert_number(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({
            "cert_number": "98765432",
            "grading_company": "PSA",
            "grade": "10",
            "player": "Patrick Mahomes",
        })

        reading = await CardScanner(client=fake_anthropic).extract_cert_number("img")

        assert reading is not None
        assert reading.cert_number == "98765432"
        assert reading.grading_company == "PSA"
        assert reading.grade == "10"
        assert fake_anthropic.last_call["max_tokens"] == settings.CERT_MAX_TOKENS

    @pytest.mark.asyncio
    async def test_unreadable_cert_number(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_reply({"cert_number": None, "grading_company": "PSA", "grade": "10"})

        reading = await CardScanner(client=fake_anthropic).extract_cert_number("img")

        assert reading is not None
        assert reading.cert_number is None

    @pytest.mark.asyncio
    async def test_api_error_returns_none(self, fake_anthropic: FakeAnthropic) -> None:
        fake_anthropic.set_failure(RuntimeError("timeout"))
        assert await CardScanner(client=fake_anthropic).extract_cert_number("img") is None
