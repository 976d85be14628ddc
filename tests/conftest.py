"""Shared fixtures: clean metrics, recorded sleeps and a small corpus"""
import pytest

from jdmatch.observability import get_metrics_collector
from jdmatch.resume.models import CorpusRecord
from jdmatch.storage.corpus_store import CorpusStore
from jdmatch.storage.tabular import InMemoryTabularStore


@pytest.fixture(autouse=True)
def clean_metrics():
    get_metrics_collector().clear()
    yield
    get_metrics_collector().clear()


@pytest.fixture
def sleeps():
    """List of requested delays; pass ``sleeps.append`` wherever a sleep is injected"""
    return []


@pytest.fixture
def corpus_store():
    store = CorpusStore(InMemoryTabularStore())
    store.upsert([
        CorpusRecord(resume_file_name="a.pdf", skills="AWS, Docker", programming_languages="Python",
                     years_of_experience=6, job_title="Data Engineer"),
        CorpusRecord(resume_file_name="b.pdf", skills="React", programming_languages="JavaScript",
                     years_of_experience=2, job_title="Frontend Developer"),
        CorpusRecord(resume_file_name="c.pdf", skills="Kubernetes, AWS", programming_languages="Go, Python",
                     years_of_experience=4, job_title="Devops Engineer"),
    ])
    return store
