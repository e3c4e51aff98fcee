from job_store import JobStore
from models import ScrapedPosting


def _posting(site_id, apply_link=None):
    return ScrapedPosting(
        site_id=site_id,
        title="Backend Engineer",
        company="Acme",
        link=f"https://www.linkedin.com/jobs/view/{site_id}/",
        posted_date="3 minutes ago",
        minutes_ago=3,
        apply_link=apply_link,
    )


def test_save_is_idempotent(job_store):
    assert job_store.save(_posting("11111111")) is True
    assert job_store.save(_posting("11111111", apply_link="https://jobs.acme.com/1")) is False
    assert job_store.count() == 1


def test_existing_ids_batches(job_store):
    for site_id in ("11111111", "22222222"):
        job_store.save(_posting(site_id))

    ids = ["11111111", "33333333", "22222222", ""] + [str(90000000 + i) for i in range(1200)]
    assert job_store.existing_ids(ids) == {"11111111", "22222222"}
    assert job_store.existing_ids([]) == set()


def test_store_creates_database_directory(tmp_path):
    store = JobStore(tmp_path / "nested" / "data" / "jobs.db")
    assert store.save(_posting("11111111")) is True
    assert (tmp_path / "nested" / "data" / "jobs.db").exists()
