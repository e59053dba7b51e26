"""Tests for request parsing, wire formats, and auction status rules."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from artbid.models.auction import Auction, normalize_status
from artbid.schemas.auction import AuctionCreate, AuctionResponse, AuctionUpdate
from artbid.schemas.bid import (
    INVALID_AMOUNT_MESSAGE,
    MISSING_FIELDS_MESSAGE,
    BidResponse,
    parse_bid_request,
)
from artbid.services.exceptions import BidTooLowError, BidValidationError, format_amount

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def build_auction(**overrides) -> Auction:
    values = {
        "auction_id": "A1",
        "title": "Harbour at Dusk",
        "images": [],
        "starting_bid": Decimal("500.00"),
        "current_bid": Decimal("500.00"),
        "bid_increment": Decimal("1.00"),
        "bid_count": 0,
        "status": "active",
        "start_time": NOW - timedelta(hours=1),
        "end_time": NOW + timedelta(hours=1),
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Auction(**values)


class TestParseBidRequest:
    """Raw bid body validation."""

    def test_valid_request(self):
        bid = parse_bid_request({"auctionId": "A1", "bidAmount": 600, "bidderId": "user-1"})

        assert bid.auction_id == "A1"
        assert bid.bid_amount == Decimal("600")
        assert bid.bidder_id == "user-1"

    def test_user_id_alias(self):
        bid = parse_bid_request({"auctionId": "A1", "bidAmount": "600.50", "userId": "user-9"})

        assert bid.bidder_id == "user-9"
        assert bid.bid_amount == Decimal("600.50")

    def test_missing_fields_listed(self):
        with pytest.raises(BidValidationError) as exc_info:
            parse_bid_request({"auctionId": "A1"})

        assert exc_info.value.message == MISSING_FIELDS_MESSAGE
        assert exc_info.value.to_dict()["missingFields"] == ["bidAmount", "bidderId"]

    def test_empty_strings_count_as_missing(self):
        with pytest.raises(BidValidationError) as exc_info:
            parse_bid_request({"auctionId": "", "bidAmount": 10, "bidderId": "u"})

        assert exc_info.value.message == MISSING_FIELDS_MESSAGE

    def test_non_object_body(self):
        with pytest.raises(BidValidationError):
            parse_bid_request(["A1", 600, "user-1"])

    @pytest.mark.parametrize("amount", [-1, 0, "abc", "NaN", "Infinity", True, "10.001"])
    def test_invalid_amounts(self, amount):
        with pytest.raises(BidValidationError) as exc_info:
            parse_bid_request({"auctionId": "A1", "bidAmount": amount, "bidderId": "user-1"})

        assert exc_info.value.message == INVALID_AMOUNT_MESSAGE
        assert exc_info.value.status_code == 400


class TestAmountFormatting:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("500.00"), "500"),
            (Decimal("500.50"), "500.5"),
            (Decimal("1000"), "1000"),
            (Decimal("0.25"), "0.25"),
        ],
    )
    def test_format_amount(self, amount, expected):
        assert format_amount(amount) == expected

    def test_bid_too_low_message(self):
        error = BidTooLowError(Decimal("1250.00"), Decimal("1251.00"))

        assert error.to_dict() == {
            "message": "Bid must be higher than current bid of R1250",
            "currentBid": 1250.0,
            "minimumBid": 1251.0,
        }


class TestAuctionStatus:
    """Clock-derived status and bid thresholds."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("live", "active"),
            ("ACTIVE", "active"),
            ("draft", "draft"),
            ("bogus", "draft"),
            (None, "draft"),
            ("", "draft"),
        ],
    )
    def test_normalize_status(self, value, expected):
        assert normalize_status(value) == expected

    def test_active_window(self):
        assert build_auction().effective_status(NOW) == "active"

    def test_before_start_is_upcoming(self):
        auction = build_auction(start_time=NOW + timedelta(minutes=5))

        assert auction.effective_status(NOW) == "upcoming"

    def test_after_end_is_ended(self):
        auction = build_auction(end_time=NOW)

        assert auction.effective_status(NOW) == "ended"

    def test_draft_and_closed_ignore_clock(self):
        assert build_auction(status="draft").effective_status(NOW) == "draft"
        assert build_auction(status="closed").effective_status(NOW) == "closed"

    def test_open_ended_auction(self):
        auction = build_auction(start_time=None, end_time=None)

        assert auction.effective_status(NOW) == "active"

    def test_naive_times_are_utc(self):
        auction = build_auction(end_time=(NOW - timedelta(minutes=1)).replace(tzinfo=None))

        assert auction.effective_status(NOW) == "ended"

    def test_minimum_next_bid(self):
        auction = build_auction(current_bid=Decimal("600.00"), bid_increment=Decimal("25.00"))

        assert auction.highest_amount == Decimal("600.00")
        assert auction.minimum_next_bid() == Decimal("625.00")


class TestWireFormat:
    """camelCase keys, numbers for money, UTC timestamps."""

    def test_auction_response_json(self):
        auction = build_auction(highest_bidder="user-1", current_bid=Decimal("600.00"), bid_count=1)

        data = AuctionResponse.from_model(auction, now=NOW).model_dump(mode="json", by_alias=True)

        assert data["auctionId"] == "A1"
        assert data["currentBid"] == 600.0
        assert data["minimumBid"] == 601.0
        assert data["highestBidder"] == "user-1"
        assert data["bidCount"] == 1
        assert data["status"] == "active"
        assert data["startTime"].endswith("Z") or data["startTime"].endswith("+00:00")

    def test_bid_response_naive_time(self):
        bid = BidResponse(
            bid_id="b1",
            auction_id="A1",
            bid_amount=Decimal("600.00"),
            bidder_id="user-1",
            bid_time=datetime(2026, 3, 1, 12, 0),
        )

        data = bid.model_dump(mode="json", by_alias=True)

        assert data["bidAmount"] == 600.0
        assert data["bidTime"] in ("2026-03-01T12:00:00Z", "2026-03-01T12:00:00+00:00")


class TestAuctionSchemas:
    def test_create_accepts_creator_id(self):
        data = AuctionCreate.model_validate(
            {"title": "Red Earth", "startingBid": 100, "creatorId": "seller-7"}
        )

        assert data.seller_id == "seller-7"

    def test_create_rejects_inverted_window(self):
        with pytest.raises(ValidationError):
            AuctionCreate.model_validate(
                {
                    "title": "Red Earth",
                    "startingBid": 100,
                    "startTime": "2026-03-02T00:00:00Z",
                    "endTime": "2026-03-01T00:00:00Z",
                }
            )

    @pytest.mark.parametrize("field", ["currentBid", "highestBidder", "bidCount"])
    def test_update_refuses_bid_fields(self, field):
        with pytest.raises(ValidationError):
            AuctionUpdate.model_validate({field: "x"})
