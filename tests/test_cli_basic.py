import json

import pytest
from typer.testing import CliRunner

import jdmatch.config as config_module
from cli.jdm import APP

runner = CliRunner()


def parse_json(output):
    """First JSON object in ``output`` (log lines may surround it)"""
    return json.JSONDecoder().raw_decode(output[output.index("{"):])[0]


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "USER_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.setenv("JDM_LOGGING__LEVEL", "WARNING")
    monkeypatch.setenv("JDM_LLM__PROVIDER", "mock")
    monkeypatch.setenv("JDM_STORAGE__OUTPUT_PATH", str(tmp_path / "resume_tags.xlsx"))
    monkeypatch.setenv("JDM_EMBEDDING__INDEX_DIR", str(tmp_path / "indexes"))
    monkeypatch.setenv("JDM_INGESTION__INTER_DOCUMENT_DELAY_S", "0")
    monkeypatch.setenv("JDM_INGESTION__EXTENSIONS", ".txt")
    return tmp_path


def test_config_show():
    result = runner.invoke(APP, ["config", "show"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Effective Configuration" in result.stdout


def test_config_show_json_reflects_env():
    result = runner.invoke(APP, ["config", "show", "--json"], catch_exceptions=False)
    assert result.exit_code == 0
    conf = parse_json(result.stdout)
    assert conf["matching"]["top_n"] == 3
    assert conf["ingestion"]["inter_document_delay_s"] == 0.0


def test_invalid_config_exits_non_zero(isolated):
    (isolated / "jdmatch.yaml").write_text("matching:\n  threshold: 500\n")
    result = runner.invoke(APP, ["config", "show"])
    assert result.exit_code == 1
    assert "invalid" in result.stdout.lower()


def test_tags_extract_inline_text():
    result = runner.invoke(APP, ["tags", "extract", "--text", "Python engineer, AWS and Docker, 5 years"],
                           catch_exceptions=False)
    assert result.exit_code == 0
    tags = parse_json(result.stdout)
    assert "AWS" in tags["Skills"]
    assert tags["Programming Languages"] == "Python"
    assert tags["Years of experience"] == 5
    assert "Job title" not in tags


def test_tags_extract_rejects_unknown_kind():
    result = runner.invoke(APP, ["tags", "extract", "--text", "x", "--kind", "letter"])
    assert result.exit_code == 1


def test_match_requires_job_description():
    result = runner.invoke(APP, ["match", "run"])
    assert result.exit_code == 1
    blank = runner.invoke(APP, ["match", "run", "--jd-text", "   "])
    assert blank.exit_code == 1
    assert "required" in blank.stdout.lower()


def test_match_without_corpus_reports_message():
    result = runner.invoke(APP, ["match", "run", "--jd-text", "Python developer", "--json"],
                           catch_exceptions=False)
    assert result.exit_code == 0
    payload = parse_json(result.stdout)
    assert payload["success"] is False
    assert "Resume Tags" in payload["message"]


def test_ingest_then_match(isolated, monkeypatch):
    root = isolated / "bucket"
    (root / "resume_input").mkdir(parents=True)
    (root / "resume_input" / "a.txt").write_text("Jane Doe\nData Engineer with 6 years of Python, AWS and Spark.")
    (root / "resume_input" / "b.txt").write_text("John Roe\nFrontend Developer, 3 years of React and TypeScript.")

    ingest = runner.invoke(APP, ["ingest", "run", "--local-root", str(root)], catch_exceptions=False)
    assert ingest.exit_code == 0
    assert "Ingestion Summary" in ingest.stdout
    assert (root / "resume_input_processed" / "a.txt").exists()
    assert (isolated / "indexes" / "a_index.npz").exists()

    monkeypatch.setenv("JDM_STORAGE__LOCAL_ROOT", str(root))
    match = runner.invoke(APP, ["match", "run", "--jd-text", "Python and AWS engineer, 5 years", "--json"],
                          catch_exceptions=False)
    assert match.exit_code == 0
    payload = parse_json(match.stdout)
    assert payload["success"] is True
    assert payload["matchingResumes"] == ["a.txt"]
    assert payload["notFound"] == []
    assert payload["scores"]["a.txt"] == 100


def test_ingest_without_storage_fails():
    result = runner.invoke(APP, ["ingest", "run"])
    assert result.exit_code == 1


@pytest.mark.parametrize("args", [
    ["tags", "extract", "--text", "Python engineer"],
    ["match", "run", "--jd-text", "Python engineer"],
])
def test_missing_api_key_reports_without_traceback(monkeypatch, args):
    monkeypatch.setenv("JDM_LLM__PROVIDER", "openai")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    result = runner.invoke(APP, args)
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "OPENAI_API_KEY" in result.stdout
