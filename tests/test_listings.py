"""
Unit tests for the marketplace listing stage.

Tests follow the Given/When/Then pattern for clarity.
"""

import asyncio

import pytest

from scripts.lib.config import ListingSettings
from scripts.lib.listings import compute_expiration, list_assets, plan_listings
from scripts.lib.transactions import BatchConfirmationError, TransactionTimeout

from conftest import CONTRACT_X, CONTRACT_Y, FakeChain, MARKETPLACE


class TestComputeExpiration:
    """Tests for compute_expiration."""

    def test_adds_one_julian_year(self):
        """
        Given a block timestamp
        When computing the expiration
        Then 365.25 days should be added
        """
        assert compute_expiration(1_700_000_000, ListingSettings()) == 1_731_557_600


class TestPlanListings:
    """Tests for plan_listings."""

    def test_skips_priced_assets_missing_from_inventory(self, sample_inventory, capsys):
        """
        Given a price for D, which is not in the inventory
        When planning listings
        Then D should be skipped with a warning and the others planned
        """
        # Given
        prices = {"A": 100, "D": 300, "C": 200}

        # When
        planned, skipped = plan_listings(sample_inventory, prices)

        # Then
        assert [(asset.asset_id, price) for asset, price in planned] == [("A", 100), ("C", 200)]
        assert skipped == ["D"]
        assert "NFT not found in inventory: D" in capsys.readouterr().err


class TestListAssets:
    """Tests for list_assets."""

    def test_submits_orders_with_shared_expiration_and_contiguous_nonces(self, sample_inventory):
        """
        Given three priced assets and a next nonce of 30
        When listing them
        Then three orders should be sent with nonces 30-32 and one shared expiration
        """
        # Given
        chain = FakeChain(nonce=30, timestamp=1_700_000_000)
        prices = {"A": 1_000, "B": 2_000, "C": 3_000}

        # When
        records = asyncio.run(
            list_assets(chain, sample_inventory, prices, MARKETPLACE, ListingSettings())
        )

        # Then
        assert [tx["nonce"] for tx in chain.sent] == [30, 31, 32]
        assert {tx["expires_at"] for tx in chain.sent} == {1_731_557_600}
        assert chain.timestamp_reads == 1
        assert chain.nonce_reads == 1
        assert [(tx["contract"], tx["token_id"], tx["price"]) for tx in chain.sent] == [
            (CONTRACT_X, 10, 1_000),
            (CONTRACT_X, 11, 2_000),
            (CONTRACT_Y, 12, 3_000),
        ]
        assert all(tx["marketplace"] == MARKETPLACE for tx in chain.sent)
        assert [r.nonce for r in records] == [30, 31, 32]
        assert [r.tx_hash for r in records] == [h.tx_hash for h in chain.handles]

    def test_waits_for_one_confirmation(self, sample_inventory):
        """
        Given default settings
        When listing assets
        Then every order should be awaited one block deep
        """
        # Given
        chain = FakeChain()

        # When
        asyncio.run(list_assets(chain, sample_inventory, {"A": 1}, MARKETPLACE, ListingSettings()))

        # Then
        assert [h.waited_with for h in chain.handles] == [1]

    def test_missing_asset_is_skipped_and_rest_listed(self, sample_inventory):
        """
        Given D priced but missing from the inventory
        When listing assets
        Then D should be skipped and A and C still listed with contiguous nonces
        """
        # Given
        chain = FakeChain(nonce=0)
        prices = {"A": 100, "D": 300, "C": 200}

        # When
        records = asyncio.run(
            list_assets(chain, sample_inventory, prices, MARKETPLACE, ListingSettings())
        )

        # Then
        assert [r.asset.asset_id for r in records] == ["A", "C"]
        assert [tx["nonce"] for tx in chain.sent] == [0, 1]

    def test_one_unmined_order_fails_the_stage(self, sample_inventory):
        """
        Given three orders where the second never gets mined
        When listing assets
        Then the stage should fail even though the other two were mined
        """
        # Given
        chain = FakeChain(
            nonce=5, wait_errors={1: TransactionTimeout("not mined", tx_hash="0x1", nonce=6)}
        )
        prices = {"A": 1, "B": 2, "C": 3}

        # When / Then
        with pytest.raises(BatchConfirmationError) as exc_info:
            asyncio.run(list_assets(chain, sample_inventory, prices, MARKETPLACE, ListingSettings()))
        assert exc_info.value.confirmed == 2
        assert exc_info.value.nonce == 6
        assert all(h.finished for h in chain.handles)

    def test_nothing_to_list(self, sample_inventory):
        """
        Given no prices
        When listing assets
        Then nothing should be read or submitted
        """
        # Given
        chain = FakeChain()

        # When
        records = asyncio.run(list_assets(chain, sample_inventory, {}, MARKETPLACE, ListingSettings()))

        # Then
        assert records == []
        assert chain.sent == []
        assert chain.timestamp_reads == 0
