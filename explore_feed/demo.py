#!/usr/bin/env python3
"""
Explore Feed Engine - Demo

Walks through every feed type, engagement learning and cache behaviour on
synthetic property content.
"""

import asyncio
import logging
import random
import time
from datetime import timedelta
from typing import List

from .config import FeedConfig
from .core.boost import BoostCampaign, InMemoryCampaignSource
from .core.engine import ExploreFeedService, create_feed_service, CATEGORY_TAGS
from .core.models import (
    ContentItem, CreatorType, EngagementSignal, EngagementType, FeedOptions,
    FeedRequestContext, FeedType, GeoPoint, utcnow
)
from .storage.profile_store import InMemoryPreferenceStore
from .storage.repository import InMemoryContentRepository

logger = logging.getLogger(__name__)

CITIES = [
    ("Cape Town", "Western Cape", GeoPoint(-33.9249, 18.4241)),
    ("Johannesburg", "Gauteng", GeoPoint(-26.2041, 28.0473)),
    ("Durban", "KwaZulu-Natal", GeoPoint(-29.8587, 31.0218)),
    ("Pretoria", "Gauteng", GeoPoint(-25.7479, 28.2293)),
]
SUBURBS = ["Sea Point", "Sandton", "Umhlanga", "Hatfield", "Claremont", "Rosebank"]
PROPERTY_TYPES = ["apartment", "house", "townhouse", "plot"]
TAGS = sorted({tag for tags in CATEGORY_TAGS.values() for tag in tags})


def print_header(title: str, char: str = "="):
    """Print a formatted header"""
    print()
    print(char * 70)
    print(f" {title}")
    print(char * 70)
    print()


def print_section(title: str):
    """Print a section header"""
    print(f"\n⚡ {title}")
    print("-" * (len(title) + 3))


def generate_synthetic_content(num_items: int = 500, seed: int = 42) -> List[ContentItem]:
    """Generate synthetic property content"""
    rng = random.Random(seed)
    now = utcnow()
    items = []

    for content_id in range(1, num_items + 1):
        city, province, centre = rng.choice(CITIES)
        creator_type = rng.choice([CreatorType.AGENT, CreatorType.DEVELOPER, CreatorType.AGENCY])
        price_min = rng.randrange(500_000, 8_000_000, 50_000)

        items.append(ContentItem(
            id=content_id,
            creator_type=creator_type,
            creator_id=rng.randint(1, 40),
            engagement_score=round(rng.uniform(0, 12), 2),
            view_count=rng.randint(0, 50_000),
            created_at=now - timedelta(days=rng.randint(0, 30), hours=rng.randint(0, 23)),
            price_min=price_min,
            price_max=price_min + rng.randrange(0, 2_000_000, 50_000),
            lifestyle_categories=frozenset(rng.sample(TAGS, k=rng.randint(0, 3))),
            coordinates=GeoPoint(
                centre.lat + rng.uniform(-0.3, 0.3),
                centre.lng + rng.uniform(-0.3, 0.3)
            ) if rng.random() > 0.2 else None,
            is_featured=rng.random() < 0.1,
            is_active=rng.random() > 0.05,
            agency_id=rng.randint(1, 8) if creator_type == CreatorType.AGENCY else None,
            agent_agency_id=rng.randint(1, 8) if creator_type == CreatorType.AGENT else None,
            property_type=rng.choice(PROPERTY_TYPES),
            city=city,
            suburb=rng.choice(SUBURBS),
            province=province,
            title=f"Property short #{content_id}",
        ))

    logger.info(f"Generated {len(items)} synthetic content items")
    return items


def print_items(items: List[ContentItem], limit: int = 5):
    for i, item in enumerate(items[:limit], 1):
        score = f"{item.score:.2f}" if item.score is not None else "-"
        sponsored = " [Sponsored]" if item.is_sponsored else ""
        print(f"  {i}. #{item.id} {item.city} ({item.property_type}) score: {score}{sponsored}")


async def demo_feed_types(service: ExploreFeedService):
    """Fetch one page of every feed type"""
    print_section("Feed Types")

    requests = [
        (FeedType.RECOMMENDED, FeedOptions(limit=5)),
        (FeedType.AREA, FeedOptions(location="Cape Town", limit=5)),
        (FeedType.CATEGORY, FeedOptions(category="luxury_homes", limit=5)),
        (FeedType.AGENT, FeedOptions(agent_id=7, limit=5)),
        (FeedType.DEVELOPER, FeedOptions(developer_id=3, limit=5)),
        (FeedType.AGENCY, FeedOptions(agency_id=2, limit=5)),
    ]

    for feed_type, options in requests:
        result = await service.get_feed(feed_type, options)
        print(f"\n{feed_type.value} (hasMore={result.has_more}, next offset={result.offset}):")
        print_items(result.shorts)


async def demo_personalization(service: ExploreFeedService, user_id: int = 1001):
    """Show how engagement reshapes a user's feed"""
    print_section("Personalization")

    context = FeedRequestContext(user_id=user_id, location=CITIES[0][2], limit=5)

    print("Initial feed:")
    print_items(await service.get_personalized_feed(context))

    print("\nSimulating engagement...")
    luxury = await service.get_feed(FeedType.CATEGORY, FeedOptions(category="luxury_homes", limit=3))
    for item in luxury.shorts:
        print(f"  complete on #{item.id}")
        await service.record_engagement(
            user_id, item.id, EngagementSignal(content_id=item.id, engagement_type=EngagementType.COMPLETE)
        )

    profile = await service.get_user_profile(user_id)
    print(f"\nLearned categories: {sorted(profile.preferred_lifestyle_categories)}")
    print(f"Learned price range: {profile.price_range_min} - {profile.price_range_max}")

    print("\nUpdated feed:")
    print_items(await service.get_personalized_feed(context))


async def benchmark_latency(service: ExploreFeedService, num_requests: int = 200):
    """Benchmark feed latency with and without cache hits"""
    print_section("Latency Benchmark")

    latencies = []
    for i in range(num_requests):
        options = FeedOptions(user_id=random.randint(1, 20), limit=10)

        start_time = time.time()
        await service.get_feed(FeedType.RECOMMENDED, options)
        latencies.append((time.time() - start_time) * 1000)

    latencies.sort()
    p50 = latencies[len(latencies) // 2]
    p95 = latencies[int(len(latencies) * 0.95)]

    print(f"\n📊 Latency Results:")
    print(f"  Total requests: {len(latencies)}")
    print(f"  Average latency: {sum(latencies) / len(latencies):.2f}ms")
    print(f"  P50 latency: {p50:.2f}ms")
    print(f"  P95 latency: {p95:.2f}ms")

    stats = service.get_statistics()["cache_stats"]
    print(f"  Cache hit rate: {stats['hit_rate'] * 100:.1f}%")


async def run_demo(num_items: int = 500, num_requests: int = 200) -> ExploreFeedService:
    """Run the full demo and return the service for inspection"""
    print_header("Explore Feed Engine - Demo")

    repository = InMemoryContentRepository(generate_synthetic_content(num_items))
    campaigns = InMemoryCampaignSource([
        BoostCampaign(id=1, content_id=1),
        BoostCampaign(id=2, content_id=2, target_property_types=frozenset({"house"})),
    ])

    service = create_feed_service(
        repository,
        InMemoryPreferenceStore(repository),
        config=FeedConfig(boost_organic_interval=4),
        campaign_source=campaigns,
    )
    await service.start()

    try:
        await demo_feed_types(service)
        await demo_personalization(service)
        await benchmark_latency(service, num_requests)
        print(f"\n{service!r}")
    finally:
        await service.shutdown()

    print("\n✅ Demo completed!")
    return service


def main():
    """Main entry point for the demo"""
    import argparse

    parser = argparse.ArgumentParser(description="Explore Feed Engine demo")
    parser.add_argument("--items", type=int, default=500, help="Synthetic content items")
    parser.add_argument("--requests", type=int, default=200, help="Benchmark requests")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    asyncio.run(run_demo(args.items, args.requests))


if __name__ == "__main__":
    main()
