import httpx

from src.reachkit.services.geocoding import PostcodeGeocoder


def _geocoder(handler) -> PostcodeGeocoder:
    return PostcodeGeocoder(
        primary_url="http://primary.test/postcode",
        fallback_url="http://fallback.test/postcodes",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_primary_provider_answer_is_used() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "primary.test"
        return httpx.Response(200, json={"status": "match", "data": {"latitude": "51.5", "longitude": "-0.12"}})

    assert _geocoder(handler).lookup(" SW1A 1AA ") == (51.5, -0.12)


def test_fallback_provider_used_when_primary_misses() -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "primary.test":
            return httpx.Response(404, json={"status": 404})
        return httpx.Response(200, json={"status": 200, "result": {"latitude": 53.48, "longitude": -2.24}})

    assert _geocoder(handler).lookup("M1 1AE") == (53.48, -2.24)
    assert hosts == ["primary.test", "fallback.test"]


def test_unresolvable_postcode_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "primary.test":
            raise httpx.ConnectError("down", request=request)
        return httpx.Response(200, json={"status": "no_match"})

    assert _geocoder(handler).lookup("ZZ9 9ZZ") is None
    assert _geocoder(handler).lookup("   ") is None
