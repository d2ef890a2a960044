from tests.test_utils.fakes.fetch import BlockingFetcher, FakeFetcher

__all__ = ["BlockingFetcher", "FakeFetcher"]
