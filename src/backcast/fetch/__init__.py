from backcast.fetch.http_fetcher import FetchResult, HttpFetcher

__all__ = ["FetchResult", "HttpFetcher"]
