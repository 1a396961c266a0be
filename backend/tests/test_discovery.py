import httpx
import pytest

from bizcontacts.discovery.business_registry import BusinessRegistrySource
from bizcontacts.discovery.geo_grid import GeoGridSource
from bizcontacts.errors import ContractError
from bizcontacts.models.business import Business
from bizcontacts.models.crawl_job import CrawlJob
from bizcontacts.models.discovery_run import DiscoveryRun
from bizcontacts.models.extraction_job import ExtractionJob
from bizcontacts.models.industry import Industry, IndustryGroup
from bizcontacts.models.job_status import RunStatus
from bizcontacts.schemas.discovery import DiscoveryRequest
from bizcontacts.services import job_store, orchestrator
from bizcontacts.services.industries import expand_industry_group
from bizcontacts.services.listing_client import ListingClient
from bizcontacts.services.places_client import PlaceResult
from bizcontacts.services.rate_limiter import RateLimiter
from bizcontacts.services.registry_client import RegistryClient


def registry_client(handler):
    return RegistryClient(
        base_url="https://registry.test/api",
        api_key="k",
        limiter=RateLimiter(1000, 60, sleep=lambda s: None),
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda s: None,
        page_size=50,
    )


class FakePlaces:
    def __init__(self, results=None):
        self.results = results or [PlaceResult(place_id="p1", name="Cafe One")]
        self.calls = 0

    def search_text(self, query, latitude, longitude, radius_m=1500):
        self.calls += 1
        return list(self.results)


def submit(db, **fields):
    request = DiscoveryRequest(user_id="user-1", **fields)
    run = orchestrator.submit_discovery(db, request)
    return run, request


def test_registry_404_completes_run_with_no_businesses(db):
    run, request = submit(db, municipality_ids=[1001])
    client = registry_client(lambda r: httpx.Response(404))

    stats = orchestrator.run_discovery(db, run.id, request, client=client)

    db.refresh(run)
    assert stats.businesses_found == 0
    assert run.status == RunStatus.COMPLETED
    assert run.started_at is not None
    assert run.completed_at is not None
    assert run.error_message is None


def test_registry_discovery_creates_businesses_and_followups(db):
    records = [
        {"arGemi": "100", "coNameEl": "Alpha", "url": "alpha.gr", "phone": "210 322 7811"},
        {"arGemi": "200", "coNameEl": "Beta", "email": "info@beta.gr", "phone": "2103227812"},
        {"arGemi": "100", "coNameEl": "Alpha duplicate"},
    ]
    run, request = submit(db, municipality_ids=[1001], activity_ids=[56])
    client = registry_client(lambda r: httpx.Response(200, json={"data": records, "totalCount": 3}))

    stats = orchestrator.run_discovery(db, run.id, request, client=client)

    assert stats.businesses_found == 2
    assert stats.businesses_created == 2
    businesses = {b.external_id: b for b in db.query(Business).all()}
    assert businesses["100"].municipality_id == 1001
    assert businesses["100"].activity_id == 56
    assert businesses["100"].phone == "+302103227811"
    assert businesses["200"].email == "info@beta.gr"

    # Alpha has a website, Beta has email and phone already
    assert db.query(CrawlJob).count() == 1
    assert db.query(ExtractionJob).count() == 1

    db.refresh(run)
    assert run.status == RunStatus.RUNNING
    assert run.cost_estimates["estimated_businesses"] == 2


def test_second_request_reuses_local_businesses(db):
    records = [{"arGemi": "100", "coNameEl": "Alpha"}]
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=records)

    run, request = submit(db, municipality_ids=[1001])
    orchestrator.run_discovery(db, run.id, request, client=registry_client(handler))
    run2, request2 = submit(db, municipality_ids=[1001])
    stats = orchestrator.run_discovery(db, run2.id, request2, client=registry_client(handler))

    assert len(calls) == 1
    assert stats.reused_local is True
    assert db.query(Business).count() == 1


def test_save_business_is_idempotent_and_coalesces(db, make_run):
    run = make_run()
    request = DiscoveryRequest(user_id="user-1", municipality_ids=[1])
    source = BusinessRegistrySource(request, db, run, run.dataset, client=object())

    data = {"external_id": "X1", "name": "Alpha", "municipality_id": 1, "phone": None}
    assert source._save_business(dict(data)) == "new"
    assert source._save_business(dict(data)) == "existing"
    assert source._save_business({**data, "phone": "+302103227811", "name": "Renamed"}) == "updated"

    rows = db.query(Business).all()
    assert len(rows) == 1
    assert rows[0].phone == "+302103227811"
    assert rows[0].name == "Alpha"


def test_save_business_requires_external_id_and_location(db, make_run):
    run = make_run()
    request = DiscoveryRequest(user_id="user-1", municipality_ids=[1])
    source = BusinessRegistrySource(request, db, run, run.dataset, client=object())

    with pytest.raises(ContractError):
        source._save_business({"name": "No id", "municipality_id": 1})
    with pytest.raises(ContractError):
        source._save_business({"external_id": "X2", "name": "Nowhere"})


def test_grid_discovery_without_coordinates_fails_the_run(db):
    run, request = submit(db, city_id="athens", keywords=["cafe"])

    stats = orchestrator.run_discovery(db, run.id, request, client=FakePlaces())

    run = db.get(DiscoveryRun, run.id)
    assert stats is None
    assert run.status == RunStatus.FAILED
    assert "Coordinates are required" in run.error_message
    assert run.started_at is not None


def test_grid_discovery_stops_on_diminishing_returns(db):
    run, request = submit(db, city_id="athens", latitude=37.98, longitude=23.73, radius_km=5, keywords=["cafe"])
    places = FakePlaces()
    source = GeoGridSource(request, db, run, run.dataset, client=places, sleep=lambda s: None)

    stats = source.run()

    # one productive batch, then three batches with nothing new
    assert stats.stopped_early is True
    assert stats.searches_executed == 12
    assert places.calls == 12
    business = db.query(Business).one()
    assert business.external_id == "p1"
    assert business.place_id == "p1"
    assert business.city_id == "athens"


def test_redelivered_run_is_left_alone(db):
    run, request = submit(db, municipality_ids=[1001])
    client = registry_client(lambda r: httpx.Response(404))
    orchestrator.run_discovery(db, run.id, request, client=client)

    assert orchestrator.run_discovery(db, run.id, request, client=client) is None
    db.refresh(run)
    assert run.status == RunStatus.COMPLETED


def test_request_needs_a_location():
    with pytest.raises(ValueError):
        DiscoveryRequest(user_id="user-1", activity_ids=[1])


def test_run_read_schema_from_orm(db):
    from bizcontacts.schemas import DiscoveryRunRead

    run, request = submit(db, municipality_ids=[1001])
    orchestrator.run_discovery(db, run.id, request, client=registry_client(lambda r: httpx.Response(404)))
    db.refresh(run)

    read = DiscoveryRunRead.model_validate(run)
    assert read.status == RunStatus.COMPLETED
    assert read.cost_estimates["export_estimates"] == []


def test_registry_companies_sharing_name_or_social_url_stay_distinct(db):
    records = [
        {"arGemi": "111", "coNameEl": "Καφέ Ωμέγα"},
        {"arGemi": "222", "coNameEl": "Καφέ Ωμέγα"},
        {"arGemi": "333", "coNameEl": "Gamma", "url": "https://facebook.com/gamma"},
        {"arGemi": "444", "coNameEl": "Delta", "url": "https://facebook.com/delta"},
    ]
    run, request = submit(db, municipality_ids=[1001])
    client = registry_client(lambda r: httpx.Response(200, json=records))

    stats = orchestrator.run_discovery(db, run.id, request, client=client)

    assert stats.businesses_created == 4
    assert sorted(b.external_id for b in db.query(Business).all()) == ["111", "222", "333", "444"]


def test_repeated_discovery_without_local_reuse_adds_no_rows(db):
    records = [
        {"arGemi": "100", "coNameEl": "Alpha", "phone": "2103227811"},
        {"arGemi": "200", "coNameEl": "Beta", "email": "info@beta.gr"},
    ]
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=records)

    run, request = submit(db, municipality_ids=[1001], reuse_local=False)
    orchestrator.run_discovery(db, run.id, request, client=registry_client(handler))
    run2, request2 = submit(db, municipality_ids=[1001], reuse_local=False)
    stats = orchestrator.run_discovery(db, run2.id, request2, client=registry_client(handler))

    assert len(calls) == 2
    assert stats.reused_local is False
    assert stats.businesses_found == 2
    assert stats.businesses_created == 0
    assert db.query(Business).count() == 2
    assert {b.discovery_run_id for b in db.query(Business).all()} == {run2.id}


class BlindRegistrySource(BusinessRegistrySource):
    """Misses the stored row, like a worker racing another insert of the same company."""

    def _find_existing(self, external_id):
        return None


def test_concurrent_insert_falls_back_to_update(db, make_run, make_business):
    rival = make_business(external_id="X1", name="Alpha", municipality_id=1)
    run = make_run()
    request = DiscoveryRequest(user_id="user-1", municipality_ids=[1])
    source = BlindRegistrySource(request, db, run, run.dataset, client=object())

    result = source._save_business({"external_id": "X1", "name": "Alpha", "municipality_id": 1, "phone": "+302103227811"})

    assert result == "updated"
    db.expire_all()
    row = db.query(Business).one()
    assert row.id == rival.id
    assert row.phone == "+302103227811"
    assert row.discovery_run_id == run.id
    assert [d.id for d in row.datasets] == [run.dataset_id]
    assert source.stats.businesses_linked == 1


def test_redelivery_after_lost_worker_fails_the_run(db):
    run, request = submit(db, municipality_ids=[1001])
    # first worker started the run and died
    job_store.start_discovery_run(db, run.id)

    result = orchestrator.run_discovery(db, run.id, request, client=registry_client(lambda r: httpx.Response(404)))

    assert result is None
    db.refresh(run)
    assert run.status == RunStatus.FAILED
    assert "worker lost" in run.error_message
    assert run.completed_at is not None


def test_redelivery_after_followups_were_queued_settles_the_run(db):
    run, request = submit(db, municipality_ids=[1001])
    job_store.start_discovery_run(db, run.id)
    db.refresh(run)
    run.cost_estimates = {"estimated_businesses": 0}
    db.commit()

    orchestrator.run_discovery(db, run.id, request, client=registry_client(lambda r: httpx.Response(404)))

    db.refresh(run)
    assert run.status == RunStatus.COMPLETED


LISTING_PAGE = """
<html><body>
<div class="AdvItemBox">
  <h2 class="CompanyName"><a class="nav-company" href="/details/omega">Καφέ Ωμέγα</a></h2>
  <meta itemprop="streetAddress" content="Ερμού 10">
  <meta itemprop="addressLocality" content="Αθήνα">
  <meta itemprop="postalCode" content="10563">
  <span itemprop="telephone">210 322 7811</span>
  <a itemprop="url" href="https://omega.gr">site</a>
</div>
<div class="AdvItemBox">
  <h2 class="CompanyName"><a class="nav-company" href="/details/omega-2">ΚΑΦΕ ΩΜΕΓΑ</a></h2>
  <meta itemprop="postalCode" content="10563">
  <meta itemprop="email" content="Info@Omega.gr">
</div>
<div class="AdvItemBox">
  <h2 class="CompanyName"><a class="nav-company" href="/details/beta">Beta</a></h2>
  <meta itemprop="addressLocality" content="Αθήνα">
</div>
</body></html>
"""


def listing_client(requested=None):
    requested = requested if requested is not None else []

    def handler(request):
        requested.append(request)
        page = int(request.url.params["page"])
        return httpx.Response(200, text=LISTING_PAGE if page == 1 else "<html></html>")

    return ListingClient(
        base_url="https://listing.test",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda s: None,
    )


def test_listing_discovery_stores_synthetic_businesses(db):
    run, request = submit(db, source="listing", city_id="athens", location_name="Αθήνα", keywords=["καφέ"])

    stats = orchestrator.run_discovery(db, run.id, request, client=listing_client())

    assert stats.searches_executed == 1
    # the two spellings of the same name at the same postal code are one business
    assert stats.businesses_found == 2
    businesses = {b.external_id: b for b in db.query(Business).all()}
    assert set(businesses) == {"name:καφε-ωμεγα:10563", "name:beta:Αθήνα"}
    omega = businesses["name:καφε-ωμεγα:10563"]
    assert omega.source == "synthetic"
    assert omega.city_id == "athens"
    assert omega.address == "Ερμού 10, Αθήνα 10563"
    assert omega.phone == "+302103227811"
    assert omega.email == "info@omega.gr"
    assert omega.website_url == "https://omega.gr"
    assert db.query(CrawlJob).count() == 1


def test_listing_discovery_reuses_stored_city_businesses(db):
    requested = []
    run, request = submit(db, source="listing", city_id="athens", keywords=["καφέ"])
    orchestrator.run_discovery(db, run.id, request, client=listing_client(requested))
    first_pass = len(requested)

    run2, request2 = submit(db, source="listing", city_id="athens", keywords=["καφέ"])
    stats = orchestrator.run_discovery(db, run2.id, request2, client=listing_client(requested))

    assert first_pass == 3
    assert len(requested) == first_pass
    assert stats.reused_local is True
    assert db.query(Business).count() == 2


def test_listing_discovery_needs_keywords(db):
    run, request = submit(db, source="listing", city_id="athens")

    assert orchestrator.run_discovery(db, run.id, request, client=listing_client()) is None
    db.refresh(run)
    assert run.status == RunStatus.FAILED
    assert "keyword" in run.error_message


def make_group(db, industries):
    group = IndustryGroup(name="Food & drink")
    db.add(group)
    db.flush()
    for name, activity_id, keywords in industries:
        db.add(Industry(name=name, group_id=group.id, activity_id=activity_id, discovery_keywords=keywords))
    db.commit()
    return group


def test_industry_group_expands_to_activities_and_keywords(db):
    group = make_group(db, [
        ("Restaurants", 5610, ["εστιατόριο", " ταβέρνα "]),
        ("Cafes", 5630, ["καφέ", "εστιατόριο"]),
        ("Catering", None, None),
    ])
    request = DiscoveryRequest(user_id="user-1", municipality_ids=[1001], industry_group_id=group.id, activity_ids=[5610])

    expanded = expand_industry_group(db, request)

    assert expanded.activity_ids == [5610, 5630]
    # industries are taken in name order
    assert expanded.keywords == ["καφέ", "εστιατόριο", "ταβέρνα"]
    assert request.activity_ids == [5610]
    assert expanded.industry_key == f"group:{group.id}"


def test_registry_run_queries_every_activity_of_the_group(db):
    group = make_group(db, [("Restaurants", 5610, []), ("Cafes", 5630, [])])
    queried = []

    def handler(request):
        queried.append(request.url.params["activities"])
        return httpx.Response(404)

    run, request = submit(db, municipality_ids=[1001], industry_group_id=group.id)
    orchestrator.run_discovery(db, run.id, request, client=registry_client(handler))

    db.refresh(run)
    assert sorted(queried) == ["5610", "5630"]
    assert run.industry_group_id == group.id
    assert run.dataset.industry_key == f"group:{group.id}"
    assert run.status == RunStatus.COMPLETED


def test_empty_industry_group_fails_the_run(db):
    group = IndustryGroup(name="Empty")
    db.add(group)
    db.commit()
    run, request = submit(db, municipality_ids=[1001], industry_group_id=group.id)

    assert orchestrator.run_discovery(db, run.id, request, client=registry_client(lambda r: httpx.Response(404))) is None
    db.refresh(run)
    assert run.status == RunStatus.FAILED
    assert "No industries found" in run.error_message


def test_dataset_keys_hold_long_location_lists(db):
    from sqlalchemy import Text

    from bizcontacts.models.dataset import Dataset

    assert isinstance(Dataset.__table__.c.location_key.type, Text)
    assert isinstance(Dataset.__table__.c.industry_key.type, Text)

    municipalities = list(range(9001, 9101))
    run, request = submit(db, municipality_ids=municipalities)

    db.expire_all()
    dataset = db.get(DiscoveryRun, run.id).dataset
    assert len(dataset.location_key) > 400
    assert dataset.location_key == request.location_key
    assert len(dataset.name) <= 255
