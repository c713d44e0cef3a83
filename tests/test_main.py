import logging

import httpx
import pytest

import main
from conftest import Router, make_html, make_jar

BASE = "https://mirror.example"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run every CLI test from an empty directory with no env overrides."""
    monkeypatch.chdir(tmp_path)
    for var in ('ARTIFACT_DESTINATION', 'VALIDATION_MIN_SIZE', 'VALIDATION_REQUIRE_SIGNATURE',
                'VALIDATION_SHA256', 'VALIDATION_BEST_EFFORT', 'LOG_LEVEL', 'LOG_FORMAT',
                'FETCHER_USER_AGENT', 'FETCHER_TIMEOUT', 'FETCHER_MAX_REDIRECTS',
                'FETCHER_MAX_RESPONSE_SIZE'):
        monkeypatch.delenv(var, raising=False)
    yield
    logging.getLogger().handlers.clear()


@pytest.fixture
def cli_router():
    router = Router()
    router.add("/html.jar", content=make_html(300))
    router.add("/good.jar", content=make_jar(120_000))
    router.add("/unsigned.jar", content=b"\x00" * 50_000)
    return router


def run_cli(argv, router):
    return main.main(argv, transport=httpx.MockTransport(router))


def test_fetch_success(tmp_path, cli_router, capsys):
    dest = tmp_path / "wrapper" / "gradle-wrapper.jar"

    code = run_cli(["fetch", f"{BASE}/html.jar", f"{BASE}/good.jar", "--dest", str(dest)], cli_router)

    out = capsys.readouterr().out
    assert code == main.EXIT_OK
    assert dest.read_bytes() == make_jar(120_000)
    assert f"FAIL {BASE}/html.jar: ValidationError" in out
    assert f"OK   {BASE}/good.jar (120000 bytes)" in out
    assert f"Saved 120000 bytes to {dest}" in out


def test_fetch_all_fail(tmp_path, cli_router, capsys):
    dest = tmp_path / "gradle-wrapper.jar"

    code = run_cli(["fetch", f"{BASE}/html.jar", f"{BASE}/missing.jar", "--dest", str(dest)], cli_router)

    out = capsys.readouterr().out
    assert code == main.EXIT_FAILED
    assert not dest.exists()
    assert "HTTPStatusError: HTTP 404" in out
    assert "FAILED: none of 2 candidate(s)" in out


def test_fetch_best_effort_is_reported_unverified(tmp_path, cli_router, capsys):
    dest = tmp_path / "gradle-wrapper.jar"

    code = run_cli(["fetch", f"{BASE}/unsigned.jar", "--dest", str(dest), "--best-effort"], cli_router)

    assert code == main.EXIT_OK
    assert "UNVERIFIED" in capsys.readouterr().out
    assert dest.stat().st_size == 50_000


def test_fetch_without_signature_requirement(tmp_path, cli_router):
    dest = tmp_path / "gradle-wrapper.jar"

    code = run_cli(["fetch", f"{BASE}/unsigned.jar", "--dest", str(dest), "--no-require-signature"],
                   cli_router)

    assert code == main.EXIT_OK


def test_fetch_persist_failure(tmp_path, cli_router, capsys):
    (tmp_path / "blocker").write_text("file")

    code = run_cli(["fetch", f"{BASE}/html.jar", f"{BASE}/good.jar",
                    "--dest", str(tmp_path / "blocker" / "x.jar")], cli_router)

    captured = capsys.readouterr()
    assert code == main.EXIT_PERSIST
    assert f"FAIL {BASE}/html.jar: ValidationError" in captured.out
    assert f"FAIL {BASE}/good.jar: PersistError" in captured.out
    assert "ERROR: could not save artifact" in captured.err
    assert "could not save artifact" not in captured.out


def test_fetch_rejects_non_numeric_fetcher_settings(tmp_path, cli_router, capsys, monkeypatch):
    monkeypatch.setenv("FETCHER_TIMEOUT", "abc")

    code = run_cli(["fetch", f"{BASE}/good.jar", "--dest", str(tmp_path / "w.jar")], cli_router)

    assert code == main.EXIT_USAGE
    assert "ERROR: invalid fetcher configuration" in capsys.readouterr().err
    assert not (tmp_path / "w.jar").exists()
    assert cli_router.calls == []


def test_fetch_rejects_non_numeric_fetcher_settings_in_config(tmp_path, cli_router, capsys):
    (tmp_path / "config.yaml").write_text("fetcher:\n  max_redirects: lots\n")

    code = run_cli(["fetch", f"{BASE}/good.jar", "--dest", str(tmp_path / "w.jar")], cli_router)

    assert code == main.EXIT_USAGE
    assert "ERROR: invalid fetcher configuration" in capsys.readouterr().err


def test_fetch_uses_config_file(tmp_path, cli_router):
    (tmp_path / "config.yaml").write_text(
        "artifact:\n"
        "  destination: out/gradle-wrapper.jar\n"
        "  sources:\n"
        f"    - {BASE}/html.jar\n"
        f"    - {BASE}/good.jar\n"
        "validation:\n"
        "  min_size: 100000\n"
    )

    code = run_cli(["fetch"], cli_router)

    assert code == main.EXIT_OK
    assert (tmp_path / "out" / "gradle-wrapper.jar").read_bytes() == make_jar(120_000)


def test_fetch_min_size_flag(tmp_path, cli_router):
    code = run_cli(["fetch", f"{BASE}/good.jar", "--dest", str(tmp_path / "w.jar"),
                    "--min-size", "200000"], cli_router)
    assert code == main.EXIT_FAILED


def test_fetch_usage_errors(tmp_path, cli_router):
    assert run_cli(["fetch", f"{BASE}/good.jar"], cli_router) == main.EXIT_USAGE
    assert run_cli(["fetch", "--dest", str(tmp_path / "w.jar")], cli_router) == main.EXIT_USAGE
    assert run_cli(["fetch", f"{BASE}/good.jar", "--dest", str(tmp_path / "w.jar"),
                    "--sha256", "nothex"], cli_router) == main.EXIT_USAGE
    assert run_cli(["--config", str(tmp_path / "absent.yaml"), "fetch"], cli_router) == main.EXIT_USAGE


def test_inspect(tmp_path, capsys):
    good = tmp_path / "good.jar"
    good.write_bytes(make_jar(60_000))
    bad = tmp_path / "bad.jar"
    bad.write_bytes(make_html(300))

    assert main.main(["inspect", str(good)]) == main.EXIT_OK
    assert "Archive signature: yes" in capsys.readouterr().out

    assert main.main(["inspect", str(bad)]) == main.EXIT_FAILED
    out = capsys.readouterr().out
    assert "Archive signature: no" in out
    assert "Leading text: '<html>" in out

    assert main.main(["inspect", str(tmp_path / "absent.jar")]) == main.EXIT_FAILED
