import httpx

from bizcontacts.services.listing_client import ListingClient, parse_listings

PAGE = """
<html><body>
<div class="AdvItemBox">
  <h2 class="CompanyName"><a class="nav-company" href="/details/kafe-omega">Καφέ Ωμέγα</a></h2>
  <div class="AdvCategory">Καφετέριες</div>
  <meta itemprop="streetAddress" content="Ερμού 10">
  <meta itemprop="addressLocality" content="Αθήνα">
  <meta itemprop="postalCode" content="10563">
  <meta itemprop="latitude" content="37.976">
  <meta itemprop="longitude" content="23.728">
  <span itemprop="telephone">210 322 7811</span>
  <span itemprop="telephone">210 322 7811</span>
  <a href="mailto:info@omega.gr?subject=hi">email</a>
  <a itemprop="url" href="https://omega.gr">site</a>
</div>
<div class="AdvItemBox">
  <h2 class="CompanyName"><a class="nav-company" title="Beta Bakery" href="https://www.vrisko.gr/details/beta"></a></h2>
  <meta itemprop="email" content="hello@beta.gr">
</div>
<div class="AdvItemBox"><h2 class="CompanyName"></h2></div>
</body></html>
"""


def test_parse_listings():
    entries = parse_listings(PAGE, "https://www.vrisko.gr")

    assert [e.name for e in entries] == ["Καφέ Ωμέγα", "Beta Bakery"]
    omega, beta = entries
    assert omega.category == "Καφετέριες"
    assert omega.street == "Ερμού 10"
    assert omega.postal_code == "10563"
    assert omega.phones == ["210 322 7811"]
    assert omega.email == "info@omega.gr"
    assert omega.website == "https://omega.gr"
    assert omega.latitude == 37.976
    assert omega.listing_url == "https://www.vrisko.gr/details/kafe-omega"
    assert beta.email == "hello@beta.gr"
    assert beta.listing_url == "https://www.vrisko.gr/details/beta"
    assert beta.phones == []


def make_client(handler, sleeps=None):
    sleeps = sleeps if sleeps is not None else []
    return ListingClient(
        base_url="https://listing.test",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
        page_delay_ms=500,
    )


def test_search_walks_pages_until_two_are_empty():
    requested = []

    def handler(request):
        page = int(request.url.params["page"])
        requested.append(page)
        return httpx.Response(200, text=PAGE if page in (1, 3) else "<html></html>")

    sleeps = []
    entries = make_client(handler, sleeps).search("καφέ", "Αθήνα", max_pages=10)

    # page 2 is empty but page 3 is not, so the walk stops after 4 and 5
    assert requested == [1, 2, 3, 4, 5]
    assert len(entries) == 4
    assert sleeps == [0.5, 0.5, 0.5, 0.5]


def test_search_url_encodes_keyword_and_location():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, text="")

    client = make_client(handler)
    client.search("καφέ bar", "Άγιος Δημήτριος", max_pages=1)

    assert seen[0].path == "/search/καφέ bar/Άγιος Δημήτριος/"
    assert seen[0].params["page"] == "1"
    assert "%20" in client.search_url("καφέ bar", "Αθήνα", 1)


def test_max_pages_bounds_the_walk():
    requested = []

    def handler(request):
        requested.append(request)
        return httpx.Response(200, text=PAGE)

    entries = make_client(handler).search("cafe", "athens", max_pages=3)
    assert len(requested) == 3
    assert len(entries) == 6


def test_server_error_is_retried_then_page_counts_as_empty():
    attempts = []

    def handler(request):
        attempts.append(int(request.url.params["page"]))
        if len(attempts) == 1:
            return httpx.Response(503)
        return httpx.Response(500 if attempts[-1] == 2 else 200, text=PAGE)

    client = make_client(handler)
    entries = client.search("cafe", "athens", max_pages=2)

    # page 1 recovers on retry; page 2 fails every attempt and is recorded
    assert len(entries) == 2
    assert attempts.count(2) == client.retry_attempts
    assert len(client.errors) == 1
    assert "page 2" in client.errors[0]
