import logging

import pytest

from pveform.errors import ReassembleError, ValidationError
from pveform.properties import (
    agent_property,
    amd_sev_property,
    bool_property,
    boot_property,
    cdrom_property,
    extract_machine_type,
    guest_properties,
    hotplug_property,
    machine_property,
    memory_property,
    name_property,
    render_agent,
    smbios1_property,
    startdate_property,
    startup_property,
    sync_memory,
    validate_startdate,
)

CURRENT = "_memory_current"


# ---------------------------------------------------------------------------
# memory
# ---------------------------------------------------------------------------


def test_memory_balloon_follows_untouched_value():
    working = memory_property().load({"memory": "2048", "balloon": 2048})
    assert working.get("_use_ballooning") is True
    working.set(CURRENT, 4096)
    sync_memory(working)
    assert working.get("balloon") == 4096
    assert working.get("_old_memory") == 4096


def test_memory_custom_balloon_is_kept():
    working = memory_property().load({"memory": "2048", "balloon": 1024})
    working.set(CURRENT, 4096)
    sync_memory(working)
    assert working.get("balloon") == 1024


def test_memory_without_balloon_starts_at_current():
    working = memory_property().load({"memory": 2048})
    assert working.get("_use_ballooning") is False
    assert working.get("balloon") == 2048
    assert working.get("_old_memory") == 2048


def test_memory_submit():
    prop = memory_property()
    record = {"memory": "2048", "balloon": 1024}
    working = prop.load(record)
    working.set(CURRENT, 4096)
    prop.sync(working)
    assert prop.submit(working, record) == {"memory": "4096", "balloon": 1024}


def test_memory_submit_without_ballooning_deletes_balloon():
    prop = memory_property()
    record = {"memory": "2048", "balloon": 1024}
    working = prop.load(record)
    working.set("_use_ballooning", False)
    assert prop.submit(working, record) == {"memory": "2048", "delete": "balloon,shares"}


def test_memory_balloon_cannot_exceed_current():
    prop = memory_property()
    record = {"memory": "2048", "balloon": 1024}
    working = prop.load(record)
    working.set("balloon", 8192)
    with pytest.raises(ValidationError) as exc:
        prop.submit(working, record)
    assert exc.value.field == "balloon"


def test_memory_renderer():
    prop = memory_property()
    assert prop.render("2048", {"balloon": 1024}) == "1 GiB/2 GiB"
    assert prop.render("2048", {}) == "2 GiB"
    assert prop.render("2048", {"balloon": 0}) == "2 GiB [balloon=0]"
    assert prop.render("2048", {"balloon": 2048}) == "2 GiB"
    assert prop.render(None, {}) == "512 MiB"
    assert prop.revert_keys == ("memory", "balloon", "shares")


# ---------------------------------------------------------------------------
# machine
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "machine_id, family",
    [
        ("q35", "q35"),
        ("pc-q35-8.1", "q35"),
        ("", "i440fx"),
        ("pc", "i440fx"),
        ("pc-i440fx-7.2", "i440fx"),
        ("virt-8.0", "virt"),
    ],
)
def test_extract_machine_type(machine_id, family):
    assert extract_machine_type(machine_id) == family


def test_extract_machine_type_unknown_logs(caplog):
    with caplog.at_level(logging.ERROR):
        assert extract_machine_type("microvm") == "i440fx"
    assert "microvm" in caplog.text


def test_machine_load_and_submit():
    prop = machine_property()
    record = {"machine": "pc-q35-8.1", "ostype": "l26"}
    working = prop.load(record)
    assert working.get("_extracted-type") == "q35"
    assert working.get("_q35-version") == "pc-q35-8.1"
    assert "_machine_type" not in working
    assert prop.submit(working, record) == {"machine": "pc-q35-8.1"}


def test_machine_q35_default_version():
    prop = machine_property()
    working = prop.load({})
    working.set("_extracted-type", "q35")
    assert prop.submit(working, {}) == {"machine": "q35"}


def test_machine_default_is_deleted():
    prop = machine_property()
    record = {"machine": "pc-i440fx-7.2"}
    working = prop.load(record)
    working.set("_i440fx-version", "")
    assert prop.submit(working, record) == {"delete": "machine"}


def test_machine_windows_requires_version():
    prop = machine_property()
    record = {"ostype": "win11"}
    with pytest.raises(ValidationError) as exc:
        prop.submit(prop.load(record), record)
    assert exc.value.field == "_i440fx-version"


def test_machine_intel_viommu_requires_q35():
    prop = machine_property()
    record = {"machine": "pc,viommu=intel"}
    with pytest.raises(ValidationError) as exc:
        prop.submit(prop.load(record), record)
    assert exc.value.field == "_machine_viommu"


def test_machine_renderer():
    prop = machine_property()
    assert prop.render(None, {"ostype": "win10"}) == "pc-i440fx-5.1"
    assert prop.render("q35", {"ostype": "win10"}) == "pc-q35-5.1"
    assert prop.render(None, {}) == "Default (i440fx)"
    assert prop.render("pc-q35-8.1", {}) == "pc-q35-8.1"


# ---------------------------------------------------------------------------
# amd-sev
# ---------------------------------------------------------------------------


def test_amd_sev_inverted_checkboxes():
    prop = amd_sev_property()
    record = {"amd-sev": "type=std,no-debug=1"}
    working = prop.load(record)
    assert working.get("_amd-sev_debug") is False
    assert working.get("_amd-sev_key-sharing") is True
    assert prop.submit(working, record) == {"amd-sev": "std,no-debug=1"}
    working.set("_amd-sev_debug", True)
    working.set("_amd-sev_key-sharing", False)
    assert prop.submit(working, record) == {"amd-sev": "std,no-key-sharing=1"}


def test_amd_sev_snp_options():
    prop = amd_sev_property()
    working = prop.load({})
    working.set("_amd-sev_type", "snp")
    working.set("_amd-sev_key-sharing", False)
    working.set("_amd-sev_allow-smt", False)
    working.set("_amd-sev_kernel-hashes", True)
    assert prop.submit(working, {}) == {"amd-sev": "snp,allow-smt=0,kernel-hashes=1"}


def test_amd_sev_empty_type_deletes():
    prop = amd_sev_property()
    record = {"amd-sev": "std"}
    working = prop.load(record)
    working.set("_amd-sev_type", "")
    assert prop.submit(working, record) == {"delete": "amd-sev"}


def test_amd_sev_renderer():
    prop = amd_sev_property()
    assert prop.render("snp", {}) == "AMD SEV-SNP (snp)"
    assert prop.placeholder == "Default (Disabled)"


# ---------------------------------------------------------------------------
# smbios1
# ---------------------------------------------------------------------------

UUID = "2bd2d3c0-3b6f-4a77-9e9b-3c2f1ad7f4a2"


def test_smbios1_base64_round_trip():
    prop = smbios1_property()
    record = {"smbios1": f"uuid={UUID},manufacturer=QUNNRQ==,base64=1"}
    working = prop.load(record)
    assert working.get("_smbios1_manufacturer") == "ACME"
    assert prop.submit(working, record) == {
        "smbios1": f"uuid={UUID},manufacturer=QUNNRQ==,base64=1"
    }


def test_smbios1_new_text_is_encoded():
    prop = smbios1_property()
    working = prop.load({})
    working.set("_smbios1_product", "Box")
    assert prop.submit(working, {}) == {"smbios1": "product=Qm94,base64=1"}


def test_smbios1_uuid_validation():
    prop = smbios1_property()
    working = prop.load({})
    working.set("_smbios1_uuid", "not-a-uuid")
    with pytest.raises(ValidationError):
        prop.submit(working, {})


# ---------------------------------------------------------------------------
# cdrom
# ---------------------------------------------------------------------------


def test_cdrom_load_existing_drive():
    prop = cdrom_property("ide2")
    record = {"ide2": "local:iso/debian.iso,media=cdrom"}
    working = prop.load(record)
    assert working.get("_device_") == "ide2"
    assert working.get("_media_type_") == "iso"
    assert working.get("_storage_") == "local"
    assert prop.title == "CD/DVD Drive (ide2)"
    assert prop.submit(working, record) == {"ide2": "local:iso/debian.iso,media=cdrom"}


def test_cdrom_switch_to_physical_drive():
    prop = cdrom_property("ide2")
    record = {"ide2": "local:iso/debian.iso,media=cdrom"}
    working = prop.load(record)
    working.set("_media_type_", "cdrom")
    assert prop.submit(working, record) == {"ide2": "cdrom,media=cdrom"}


def test_cdrom_new_drive():
    prop = cdrom_property()
    record = {"scsi0": "local-lvm:vm-100-disk-0"}
    working = prop.load(record)
    working.set("_device_", "ide2")
    working.set("_media_type_", "none")
    assert prop.submit(working, record) == {"ide2": "none,media=cdrom"}


def test_cdrom_invalid_device_fails_validation():
    prop = cdrom_property()
    record = {"scsi0": "local-lvm:vm-100-disk-0"}
    working = prop.load(record)
    working.set("_device_", {"controller": "scsi", "device_id": "invalid"})
    with pytest.raises(ValidationError) as exc:
        prop.submit(working, record)
    assert exc.value.field == "_device_"


def test_cdrom_used_device_rejected():
    prop = cdrom_property()
    record = {"scsi0": "local-lvm:vm-100-disk-0"}
    working = prop.load(record)
    working.set("_device_", "scsi0")
    with pytest.raises(ValidationError, match="already in use"):
        prop.submit(working, record)


def test_cdrom_iso_needs_a_volume():
    prop = cdrom_property()
    working = prop.load({})
    working.set("_device_", "sata1")
    working.set("_media_type_", "iso")
    with pytest.raises(ReassembleError) as exc:
        prop.submit(working, {})
    assert exc.value.field == "_sata1_file"


# ---------------------------------------------------------------------------
# simple properties
# ---------------------------------------------------------------------------


def test_hotplug_property_round_trip():
    prop = hotplug_property()
    working = prop.load({"hotplug": "1"})
    assert working.get("hotplug") == ["disk", "network", "usb"]
    assert prop.submit(working, {"hotplug": "1"}) == {"hotplug": "disk,network,usb"}
    working = prop.load({"hotplug": "0"})
    assert prop.submit(working, {"hotplug": "0"}) == {"hotplug": "0"}
    assert prop.render("0", {}) == "Disabled"


@pytest.mark.parametrize("value", ["now", "2006-06-17", "2006-06-17T16:01:21", ""])
def test_startdate_accepts(value):
    assert validate_startdate(value) == value


@pytest.mark.parametrize("value", ["yesterday", "2006-06", "17.06.2006"])
def test_startdate_rejects(value):
    with pytest.raises(ValidationError):
        validate_startdate(value)


def test_startdate_cleared_is_deleted():
    prop = startdate_property()
    working = prop.load({"startdate": "now"})
    working.set("startdate", "")
    assert prop.submit(working, {"startdate": "now"}) == {"delete": "startdate"}


def test_startup_property():
    prop = startup_property()
    record = {"startup": "order=2,up=10"}
    working = prop.load(record)
    working.set("_startup_down", 30)
    assert prop.submit(working, record) == {"startup": "2,up=10,down=30"}
    assert prop.placeholder == "order=any"


def test_agent_renderer(caplog):
    assert render_agent("agent", "1,type=virtio,fstrim_cloned_disks=1", {}) == (
        "Enabled, virtio, fstrim-cloned-disks: Yes"
    )
    assert render_agent("agent", "0", {}) == "Disabled"
    assert render_agent("agent", "1,freeze-fs-on-backup=0", {}) == (
        "Enabled, freeze-fs-on-backup: No"
    )
    with caplog.at_level(logging.ERROR):
        assert render_agent("agent", "type=foo", {}) == "type=foo"
    assert agent_property().render("1", {}) == "Enabled"


def test_bool_and_name_properties():
    prop = bool_property("onboot", "Start on boot", False)
    assert prop.render(1, {}) == "Yes"
    assert prop.placeholder == "No"
    assert name_property(100).placeholder == "VM 100"


def test_boot_property_commits_list():
    prop = boot_property()
    record = {"boot": "order=scsi0"}
    working = prop.load(record)
    working.set("boot", [{"name": "net0"}, {"name": "scsi0", "enabled": False}])
    assert prop.submit(working, record) == {"boot": "order=net0"}
    assert isinstance(working.get("boot"), list)


def test_guest_properties_use_default_memory():
    props = guest_properties(default_memory=1024)
    assert {"memory", "agent", "boot", "amd-sev", "smbios1"} <= set(props)
    assert props["memory"].placeholder == "1024"
    assert props["memory"].render(None, {}) == "1 GiB"
