"""
Tests for competitor price resolution.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from repricer.collectors.base import CompetitorOffer
from repricer.models.schemas import Competitor, CompetitorSource, Listing, ManualCompetitorList, utcnow
from repricer.services.competitor_list import CompetitorListService
from repricer.services.competitor_resolver import CompetitorPriceResolver, is_excluded, refresh_due

D = Decimal


def competitor(item_id, price, **fields):
    return Competitor(competitor_item_id=item_id, title=fields.pop("title", f"Item {item_id}"), price=D(price), **fields)


def offer(item_id, price, **fields):
    return CompetitorOffer(item_id=item_id, title=fields.pop("title", f"Offer {item_id}"), price=D(price), **fields)


@pytest.fixture
def seed(competitor_repo):
    def _seed(*competitors, monitoring_enabled=True, **fields):
        competitor_repo.items[("u1", "111")] = ManualCompetitorList(
            user_id="u1",
            item_id="111",
            competitors=list(competitors),
            monitoring_enabled=monitoring_enabled,
            **fields,
        )
    return _seed


class TestManualCompetitors:

    @pytest.mark.asyncio
    async def test_lowest_price_wins(self, resolver, seed):
        seed(competitor("201", "6.10"), competitor("202", "5.27"), competitor("203", "7.00"))

        result = await resolver.resolve("111", "u1")

        assert result.price == D("5.27")
        assert result.sample_count == 3
        assert result.source == CompetitorSource.MANUAL
        assert result.had_manual_data is True

    @pytest.mark.asyncio
    async def test_non_positive_prices_ignored(self, resolver, seed):
        seed(competitor("201", "0"), competitor("202", "-1"), competitor("203", "8.00"))

        result = await resolver.resolve("111", "u1")

        assert result.price == D("8.00")
        assert result.sample_count == 1

    @pytest.mark.asyncio
    async def test_rule_exclusions(self, resolver, seed, make_rule):
        seed(
            competitor("201", "3.00", locale="CN"),
            competitor("202", "3.50", condition="Used"),
            competitor("203", "4.00", title="Replacement CASE only"),
            competitor("204", "4.50", seller_id="cheap_seller"),
            competitor("205", "6.00"),
        )
        rule = make_rule(
            exclude_countries=["CN"],
            exclude_conditions=["Used"],
            exclude_product_title_words=["case"],
            exclude_sellers=["cheap_seller"],
        )

        result = await resolver.resolve("111", "u1", rule)

        assert result.price == D("6.00")
        assert result.found == 5
        assert result.excluded == 4

    @pytest.mark.asyncio
    async def test_filtered_to_empty_is_not_no_data(self, resolver, seed, make_rule, gateway, settings):
        settings.live_search_enabled = True
        gateway.search_results = [offer("301", "1.00")]
        seed(competitor("201", "3.00", locale="CN"))

        result = await resolver.resolve(
            "111", "u1", make_rule(exclude_countries=["CN"]), listing=Listing(item_id="111", title="Widget")
        )

        assert result.price is None
        assert result.source == CompetitorSource.NONE
        assert result.had_manual_data is True
        assert gateway.search_queries == []

    @pytest.mark.asyncio
    async def test_price_window_filters_outliers(self, resolver, seed, make_rule):
        seed(competitor("201", "2.00"), competitor("202", "9.00"), competitor("203", "30.00"))
        rule = make_rule(min_percent_of_current_price=50, max_percent_of_current_price=200)

        result = await resolver.resolve("111", "u1", rule, current_price=D("10.00"))

        assert result.price == D("9.00")
        assert result.excluded == 2

    @pytest.mark.asyncio
    async def test_rule_stats_recorded(self, resolver, seed, store):
        rule = await store.create_rule({"rule_name": "No CN", "exclude_countries": ["CN"]})
        seed(competitor("201", "3.00", locale="CN"), competitor("202", "4.00"))

        await resolver.resolve("111", "u1", rule)

        stats = (await store.rules.get(rule.id)).execution_stats
        assert stats.total_competitors_found == 2
        assert stats.competitors_excluded == 1
        assert stats.execution_history[0].final_competitors_used == 1


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refreshed_prices_written_back(self, resolver, seed, gateway, competitor_repo):
        seed(competitor("201", "6.00"), competitor("202", "7.00"))
        gateway.competitor_prices = {"201": D("5.50"), "202": D("4.90")}

        result = await resolver.resolve("111", "u1")

        assert result.price == D("4.90")
        stored = competitor_repo.items[("u1", "111")]
        assert [c.price for c in stored.competitors] == [D("5.50"), D("4.90")]
        assert stored.last_lowest_price == D("4.90")
        assert stored.last_monitoring_check is not None

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_cached_price(self, resolver, seed, gateway):
        seed(competitor("201", "6.00"), competitor("202", "7.00"))
        gateway.failing_competitors = {"201"}
        gateway.competitor_prices = {"202": D("6.50")}

        result = await resolver.resolve("111", "u1")

        assert result.price == D("6.00")
        assert result.sample_count == 2

    @pytest.mark.asyncio
    async def test_unavailable_competitor_keeps_cached_price(self, resolver, seed, gateway):
        seed(competitor("201", "6.00"))
        gateway.competitor_prices = {"201": None}

        result = await resolver.resolve("111", "u1")

        assert result.price == D("6.00")

    @pytest.mark.asyncio
    async def test_refresh_skipped_when_monitoring_disabled(self, resolver, seed, gateway, competitor_repo):
        seed(competitor("201", "6.00"), monitoring_enabled=False)
        gateway.competitor_prices = {"201": D("1.00")}

        result = await resolver.resolve("111", "u1")

        assert result.price == D("6.00")
        assert competitor_repo.saves == 0

    @pytest.mark.asyncio
    async def test_removal_during_refresh_is_kept(self, resolver, seed, gateway, competitor_repo):
        seed(competitor("201", "3.00"), competitor("202", "7.00"))
        gateway.competitor_prices = {"202": D("6.50")}
        original = gateway.refresh_competitor_price

        async def refresh_while_user_removes(competitor_item_id):
            if competitor_item_id == "201":
                await CompetitorListService(competitor_repo).remove_competitor("u1", "111", "201")
            return await original(competitor_item_id)

        gateway.refresh_competitor_price = refresh_while_user_removes

        result = await resolver.resolve("111", "u1")

        stored = competitor_repo.items[("u1", "111")]
        assert [c.competitor_item_id for c in stored.competitors] == ["202"]
        assert stored.competitors[0].price == D("6.50")
        assert stored.last_lowest_price == D("6.50")
        assert result.price == D("6.50")
        assert result.found == 1

    @pytest.mark.asyncio
    async def test_addition_during_refresh_is_kept(self, resolver, seed, gateway, competitor_repo):
        seed(competitor("201", "6.00"))
        gateway.competitor_prices = {"201": D("5.50")}
        original = gateway.refresh_competitor_price

        async def refresh_while_user_adds(competitor_item_id):
            stored = competitor_repo.items[("u1", "111")]
            stored.competitors.append(competitor("202", "4.00"))
            return await original(competitor_item_id)

        gateway.refresh_competitor_price = refresh_while_user_adds

        result = await resolver.resolve("111", "u1")

        stored = competitor_repo.items[("u1", "111")]
        assert [c.competitor_item_id for c in stored.competitors] == ["201", "202"]
        assert stored.competitors[0].price == D("5.50")
        assert result.price == D("4.00")

    @pytest.mark.asyncio
    async def test_refresh_waits_for_monitoring_frequency(self, resolver, seed, gateway, competitor_repo):
        seed(
            competitor("201", "6.00"),
            monitoring_frequency=30,
            last_monitoring_check=utcnow() - timedelta(minutes=5),
        )
        gateway.competitor_prices = {"201": D("1.00")}

        result = await resolver.resolve("111", "u1")

        assert result.price == D("6.00")
        assert competitor_repo.items[("u1", "111")].competitors[0].price == D("6.00")

    @pytest.mark.asyncio
    async def test_refresh_after_monitoring_frequency(self, resolver, seed, gateway):
        seed(
            competitor("201", "6.00"),
            monitoring_frequency=30,
            last_monitoring_check=utcnow() - timedelta(minutes=31),
        )
        gateway.competitor_prices = {"201": D("5.00")}

        result = await resolver.resolve("111", "u1")

        assert result.price == D("5.00")

    def test_refresh_due(self):
        now = utcnow()
        fresh = ManualCompetitorList(user_id="u1", item_id="111", monitoring_frequency=20)
        assert refresh_due(fresh, now) is True

        fresh.last_monitoring_check = now - timedelta(minutes=19)
        assert refresh_due(fresh, now) is False

        fresh.last_monitoring_check = now - timedelta(minutes=20)
        assert refresh_due(fresh, now) is True

        fresh.last_monitoring_check = (now - timedelta(minutes=5)).replace(tzinfo=None)
        assert refresh_due(fresh, now) is False


class TestLiveSearch:

    @pytest.mark.asyncio
    async def test_no_data_and_search_disabled(self, resolver, gateway):
        result = await resolver.resolve("111", "u1", listing=Listing(item_id="111", title="Widget"))

        assert result.price is None
        assert result.source == CompetitorSource.NONE
        assert result.had_manual_data is False
        assert gateway.search_queries == []

    @pytest.mark.asyncio
    async def test_search_used_without_manual_data(self, resolver, gateway, settings, make_rule):
        settings.live_search_enabled = True
        gateway.search_results = [
            offer("111", "1.00"),  # the seller's own listing
            offer("301", "5.00", condition="Used"),
            offer("302", "6.00"),
            offer("302", "6.00"),
            offer("303", "7.00"),
        ]

        result = await resolver.resolve(
            "111",
            "u1",
            make_rule(exclude_conditions=["Used"]),
            listing=Listing(item_id="111", title="Widget"),
        )

        assert result.price == D("6.00")
        assert result.source == CompetitorSource.API_SEARCH
        assert result.found == 3
        assert result.excluded == 1
        assert gateway.search_queries[0].keywords == "Widget"

    @pytest.mark.asyncio
    async def test_query_precedence(self, resolver, gateway, settings, make_rule):
        settings.live_search_enabled = True
        listing = Listing(item_id="111", title="Widget", mpn="MPN-1", upc="0123456789012", ean="4006381333931")

        await resolver.resolve("111", "u1", make_rule(find_competitors_based_on_mpn=True), listing=listing)
        await resolver.resolve("111", "u1", make_rule(), listing=listing)
        listing.upc = None
        await resolver.resolve("111", "u1", None, listing=listing)

        first, second, third = gateway.search_queries
        assert first.mpn == "MPN-1" and first.upc is None
        assert second.upc == "0123456789012" and second.mpn is None
        assert third.ean == "4006381333931"

    @pytest.mark.asyncio
    async def test_search_failure_is_no_data(self, competitor_repo, gateway, settings):
        settings.live_search_enabled = True

        async def broken(query):
            raise RuntimeError("search down")

        gateway.search_competitors_live = broken
        resolver = CompetitorPriceResolver(competitor_repo, gateway, settings=settings)

        result = await resolver.resolve("111", "u1", listing=Listing(item_id="111", title="Widget"))

        assert result.price is None
        assert result.source == CompetitorSource.NONE


class TestIsExcluded:

    def test_title_match_is_case_insensitive(self, make_rule):
        rule = make_rule(exclude_product_title_words=["Broken"])
        assert is_excluded(competitor("201", "1", title="screen BROKEN, parts"), rule)
        assert not is_excluded(competitor("202", "1", title="Mint"), rule)

    def test_window_ignored_without_current_price(self, make_rule):
        rule = make_rule(min_percent_of_current_price=90, max_percent_of_current_price=110)
        assert not is_excluded(competitor("201", "1"), rule)
        assert is_excluded(competitor("201", "1"), rule, D("10"))
