"""Unit tests for version, purpose, association and flash profile models."""

import hashlib
import pytest

from fwupdater.config import Settings
from fwupdater.models.association import (
    ACTIVATION_FWD_ASSOCIATION,
    ACTIVATION_REV_ASSOCIATION,
    Association,
    AssociationSet,
    inventory_association,
)
from fwupdater.models.images import BIOS_FULL_IMAGE, BMC_FULL_IMAGE, MCU_FULL_IMAGE, flash_profile
from fwupdater.models.status import VersionPurpose
from fwupdater.models.version import Version, get_id, get_release_version


@pytest.mark.unit
class TestVersionId:

    def test_is_sha512_prefix(self):
        assert get_id("2.0.1") == hashlib.sha512(b"2.0.1").hexdigest()[:8]

    def test_is_eight_lowercase_hex_digits(self):
        vid = get_id("bmc-v2.12.0-dev")
        assert len(vid) == 8
        assert all(c in "0123456789abcdef" for c in vid)

    def test_is_deterministic(self):
        assert get_id("1.0") == get_id("1.0")
        assert get_id("1.0") != get_id("1.1")


@pytest.mark.unit
class TestReleaseVersion:

    def test_quoted_value(self, tmp_path):
        release = tmp_path / "os-release"
        release.write_text('ID=openbmc\nVERSION_ID="2.12.0-dev"\nNAME="BMC"\n')
        assert get_release_version(release) == "2.12.0-dev"

    def test_unquoted_value(self, tmp_path):
        release = tmp_path / "bios-release"
        release.write_text("VERSION_ID=1.4\n")
        assert get_release_version(release) == "1.4"

    def test_missing_key(self, tmp_path):
        release = tmp_path / "os-release"
        release.write_text("ID=openbmc\n")
        assert get_release_version(release) == ""

    def test_missing_file(self, tmp_path):
        assert get_release_version(tmp_path / "nope") == ""


@pytest.mark.unit
class TestVersionPurpose:

    @pytest.mark.parametrize("raw,expected", [
        ("BMC", VersionPurpose.BMC),
        ("Host", VersionPurpose.HOST),
        ("xyz.openbmc_project.Software.Version.VersionPurpose.System", VersionPurpose.SYSTEM),
        ("xyz.openbmc_project.Software.Version.VersionPurpose.Auxiliary", VersionPurpose.AUXILIARY),
        ("MCU", VersionPurpose.AUXILIARY),
        ("Toaster", VersionPurpose.UNKNOWN),
        ("", VersionPurpose.UNKNOWN),
    ])
    def test_from_string(self, raw, expected):
        assert VersionPurpose.from_string(raw) == expected


@pytest.mark.unit
class TestVersion:

    def test_functional_check_is_evaluated_on_access(self):
        functional = set()
        version = Version("1a2b3c4d", "1.0", VersionPurpose.HOST, "/tmp/images/1a2b3c4d",
                          "/xyz/openbmc_project/software/1a2b3c4d", lambda p: p in functional)

        assert version.is_functional is False
        functional.add(version.path)
        assert version.is_functional is True

    def test_without_check_never_functional(self):
        version = Version("1a2b3c4d", "1.0", VersionPurpose.HOST, "", "/sw/1a2b3c4d")
        assert version.is_functional is False


@pytest.mark.unit
class TestAssociationSet:

    def test_add_publishes_new_snapshot(self):
        published = []
        assocs = AssociationSet(on_publish=published.append)

        assocs.create_active("/sw/a")
        snapshot = assocs.published
        assocs.create_functional("/sw/a")

        assert snapshot == (Association("active", "software_version", "/sw/a"),)
        assert len(assocs.published) == 2
        assert len(published) == 2

    def test_add_dedupes(self):
        assocs = AssociationSet()
        assocs.create_active("/sw/a")
        assocs.create_active("/sw/a")

        assert len(assocs) == 1

    def test_same_forward_different_paths(self):
        assocs = AssociationSet()
        assocs.create_active("/sw/a")
        assocs.create_active("/sw/b")

        assert assocs.has("active", "/sw/a")
        assert assocs.has("active", "/sw/b")

    def test_remove_path_removes_all_kinds(self):
        assocs = AssociationSet()
        for path in ("/sw/a", "/sw/b"):
            assocs.create_active(path)
            assocs.create_functional(path)
            assocs.create_updateable(path)

        assocs.remove_path("/sw/a")

        assert [a.path for a in assocs] == ["/sw/b"] * 3
        assert not assocs.is_functional("/sw/a")
        assert assocs.is_functional("/sw/b")

    def test_remove_unknown_path_is_noop(self):
        published = []
        assocs = AssociationSet(on_publish=published.append)
        assocs.create_active("/sw/a")

        assocs.remove_path("/sw/zzz")

        assert len(assocs) == 1
        assert len(published) == 1

    def test_inventory_association(self):
        assoc = inventory_association("/xyz/openbmc_project/inventory/system")
        assert assoc.forward == ACTIVATION_FWD_ASSOCIATION
        assert assoc.reverse == ACTIVATION_REV_ASSOCIATION


@pytest.mark.unit
class TestFlashProfile:

    def test_bmc_static_layout_has_no_service(self):
        profile = flash_profile(VersionPurpose.BMC, Settings())
        assert profile.service_unit is None
        assert profile.artifacts[0] == BMC_FULL_IMAGE
        assert profile.staging_dir == "/run/initramfs"
        assert profile.registers_functional is False

    def test_host_uses_bios_service(self):
        profile = flash_profile(VersionPurpose.HOST, Settings())
        assert profile.artifacts == [BIOS_FULL_IMAGE]
        assert profile.service_unit == "bios-update.service"
        assert profile.registers_functional is True

    def test_auxiliary_uses_mcu_service(self):
        profile = flash_profile(VersionPurpose.AUXILIARY, Settings(MCU_FLASH_UNIT="x.service"))
        assert profile.artifacts == [MCU_FULL_IMAGE]
        assert profile.service_unit == "x.service"

    def test_unknown_purpose_rejected(self):
        with pytest.raises(ValueError):
            flash_profile(VersionPurpose.UNKNOWN, Settings())
