import json

import pytest

from content_reco.config import RecommendationSettings
from content_reco.interface import configure
from content_reco.jobs.maintenance import build_parser, main

from .conftest import NOW


@pytest.fixture(autouse=True)
def store(loader):
    configure(loader, RecommendationSettings(), clock=lambda: NOW)
    return loader


def test_vectors_job_prints_summary(store, capsys):
    assert main(["vectors", "--force"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["processed"] == 4
    assert summary["failed"] == 0
    assert store.get_vector(3) is not None


def test_metrics_job(capsys):
    assert main(["metrics", "--k", "5", "--days", "3"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["k"] == 5
    assert report["days"] == 3


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
