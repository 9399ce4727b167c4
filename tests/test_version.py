from datetime import datetime, timedelta, timezone

import pytest

from versionstamp.config import ConfigurationError, RunParameters
from versionstamp.revision import RevisionCounter, encode_key
from versionstamp.version import (
    compose_version,
    day_code,
    file_version_key,
    prerelease_key,
    resolve_version,
)

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


def make_params(**overrides):
    values = dict(product_name="Product", major=1, minor=2, patch=3,
                  create_prerelease=True, prerelease_label="beta", source_root=".")
    values.update(overrides)
    return RunParameters(**values)


def test_day_code_counts_from_2000():
    assert day_code(datetime(2000, 1, 1, tzinfo=timezone.utc)) == 0
    assert day_code(datetime(2000, 1, 2, 0, 0, 1, tzinfo=timezone.utc)) == 1
    assert day_code(NOW) == 9788


def test_day_code_is_stable_within_a_utc_day():
    start = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)
    end = datetime(2026, 10, 19, 23, 59, 59, tzinfo=timezone.utc)

    assert day_code(start) == day_code(end)


@pytest.mark.parametrize("days", [1, 2, 31, 366])
def test_day_code_increases_by_elapsed_days(days):
    assert day_code(NOW + timedelta(days=days)) - day_code(NOW) == days


def test_day_code_uses_utc_date():
    # 23:30 on the 18th in UTC-5 is already the 19th in UTC
    eastern = timezone(timedelta(hours=-5))
    assert day_code(datetime(2026, 10, 18, 23, 30, tzinfo=eastern)) == 9788


def test_revision_keys():
    assert file_version_key(1, 2, 9788) == "AssemblyFileVersion 1.2.9788"
    assert prerelease_key(1, 2, 3, "beta") == "AssemblyInformationalVersion 1.2.3-beta"


def test_compose_prerelease_version():
    version = compose_version(1, 2, 3, 9788, 5, True, "beta", 3)

    assert version.assembly_version == "1.2.3.0"
    assert version.assembly_file_version == "1.2.9788.5"
    assert version.assembly_informational_version == "1.2.3-beta03"
    assert version.suffix == "beta03"


def test_compose_prerelease_revision_is_not_truncated():
    version = compose_version(1, 2, 3, 9788, 0, True, "rc", 123)

    assert version.suffix == "rc123"
    assert version.assembly_informational_version == "1.2.3-rc123"


def test_compose_release_version():
    version = compose_version(4, 0, 1, 9788, 0)

    assert version.assembly_informational_version == "4.0.1"
    assert version.suffix is None


def test_resolve_version_draws_both_revisions(fake_store):
    counter = RevisionCounter(fake_store)

    first = resolve_version(make_params(), counter, now=NOW)
    second = resolve_version(make_params(), counter, now=NOW)

    assert first.assembly_file_version == "1.2.9788.0"
    assert first.assembly_informational_version == "1.2.3-beta00"
    assert second.assembly_file_version == "1.2.9788.1"
    assert second.assembly_informational_version == "1.2.3-beta01"
    assert fake_store.documents["Product"].revisions == {
        encode_key("AssemblyFileVersion 1.2.9788"): 1,
        encode_key("AssemblyInformationalVersion 1.2.3-beta"): 1,
    }


def test_resolve_version_file_revision_restarts_on_a_new_day(fake_store):
    counter = RevisionCounter(fake_store)
    resolve_version(make_params(), counter, now=NOW)

    tomorrow = resolve_version(make_params(), counter, now=NOW + timedelta(days=1))

    assert tomorrow.assembly_file_version == "1.2.9789.0"
    assert tomorrow.assembly_informational_version == "1.2.3-beta01"


def test_resolve_version_applies_overrides(fake_store):
    params = make_params(override_file_version_revision=True, file_version_revision_override=40,
                         override_prerelease_revision=True, prerelease_revision_override=7)

    version = resolve_version(params, RevisionCounter(fake_store), now=NOW)

    assert version.assembly_file_version == "1.2.9788.40"
    assert version.suffix == "beta07"


def test_resolve_release_version_uses_only_file_revision(fake_store):
    version = resolve_version(make_params(create_prerelease=False, prerelease_label=None),
                              RevisionCounter(fake_store), now=NOW)

    assert version.assembly_informational_version == "1.2.3"
    assert list(fake_store.documents["Product"].revisions) == [encode_key("AssemblyFileVersion 1.2.9788")]


@pytest.mark.parametrize("label", [None, "", "   "])
def test_missing_prerelease_label_fails_before_counting(fake_store, label):
    with pytest.raises(ConfigurationError):
        resolve_version(make_params(prerelease_label=label), RevisionCounter(fake_store), now=NOW)

    assert fake_store.calls == []


def test_peek_leaves_store_untouched(fake_store):
    counter = RevisionCounter(fake_store)
    resolve_version(make_params(), counter, now=NOW)

    peeked = resolve_version(make_params(), counter, now=NOW, peek=True)

    assert peeked.assembly_file_version == "1.2.9788.1"
    assert fake_store.writes == ["create", "update"]
