import pytest

from explore_feed.demo import generate_synthetic_content, run_demo


def test_synthetic_content_is_reproducible():
    first = generate_synthetic_content(50, seed=7)
    second = generate_synthetic_content(50, seed=7)

    assert [item.id for item in first] == list(range(1, 51))
    assert [(item.city, item.price_min) for item in first] == [(item.city, item.price_min) for item in second]


@pytest.mark.asyncio
async def test_demo_runs_end_to_end(capsys):
    service = await run_demo(num_items=60, num_requests=10)

    output = capsys.readouterr().out
    assert "Demo completed" in output
    assert service.get_statistics()["total_requests"] > 0
