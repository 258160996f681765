import pytest

from shichain.errors import UnsupportedPlatformError
from shichain.platforms import ARCH_TAGS, PlatformDetector
from tests.conftest import FakeRun


def make_root(tmp_path, cpuinfo="", systemd=True, os_release=True):
    (tmp_path / "proc").mkdir()
    (tmp_path / "proc" / "cpuinfo").write_text(cpuinfo)
    if os_release:
        (tmp_path / "etc").mkdir()
        (tmp_path / "etc" / "os-release").write_text('ID=ubuntu\nVERSION_ID="22.04"\n')
    if systemd:
        (tmp_path / "run" / "systemd" / "system").mkdir(parents=True)
    return tmp_path


def which_only(*names):
    return lambda cmd: f"/usr/bin/{cmd}" if cmd in names else None


def snapshot(root):
    return sorted(str(p) for p in root.rglob("*"))


@pytest.mark.parametrize("machine,tag", [
    ("x86_64", "64"),
    ("amd64", "64"),
    ("i686", "32"),
    ("aarch64", "arm64-v8a"),
    ("armv5tel", "arm32-v5"),
    ("mipsle", "mips32le"),
    ("ppc64le", "ppc64le"),
    ("riscv64", "riscv64"),
    ("s390x", "s390x"),
])
def test_arch_tags(tmp_path, machine, tag):
    detector = PlatformDetector(root=make_root(tmp_path), system="Linux", machine=machine, which=which_only("apt"))
    assert detector.detect().arch == tag


def test_every_known_machine_maps_to_one_tag(tmp_path):
    root = make_root(tmp_path, cpuinfo="Features\t: half thumb fastmult vfp edsp\n")
    for machine in ARCH_TAGS:
        detector = PlatformDetector(root=root, system="Linux", machine=machine, run=FakeRun())
        assert detector.detect_arch() in set(ARCH_TAGS.values())


@pytest.mark.parametrize("machine", ["sparc64", "loongarch64", "x86"])
def test_unsupported_arch_has_no_side_effects(tmp_path, machine):
    root = make_root(tmp_path)
    before = snapshot(root)
    detector = PlatformDetector(root=root, system="Linux", machine=machine, which=which_only("apt"))
    with pytest.raises(UnsupportedPlatformError) as exc:
        detector.detect()
    assert exc.value.kind == "arch"
    assert snapshot(root) == before


@pytest.mark.parametrize("machine,expected", [("armv7l", "arm32-v7a"), ("armv7", "arm32-v7a"), ("armv6l", "arm32-v6")])
def test_arm_hard_float_with_vfp(tmp_path, machine, expected):
    root = make_root(tmp_path, cpuinfo="processor\t: 0\nFeatures\t: half thumb fastmult vfp edsp neon\n")
    assert PlatformDetector(root=root, machine=machine).detect_arch() == expected


@pytest.mark.parametrize("machine", ["armv7l", "armv6l"])
def test_arm_soft_float_without_vfp(tmp_path, machine):
    root = make_root(tmp_path, cpuinfo="processor\t: 0\nFeatures\t: half thumb fastmult edsp\n")
    assert PlatformDetector(root=root, machine=machine).detect_arch() == "arm32-v5"


def test_vfpv3_alone_is_not_vfp(tmp_path):
    root = make_root(tmp_path, cpuinfo="Features\t: swp half thumb vfpv3 neon\n")
    assert PlatformDetector(root=root, machine="armv7l").detect_arch() == "arm32-v5"


def test_mips64_little_endian(tmp_path):
    run = FakeRun(stdout={"lscpu": "Architecture: mips64\nByte Order: Little Endian\n"})
    detector = PlatformDetector(root=make_root(tmp_path), machine="mips64", run=run)
    assert detector.detect_arch() == "mips64le"
    assert run.commands() == ["lscpu"]


def test_mips64_big_endian(tmp_path):
    run = FakeRun(stdout={"lscpu": "Architecture: mips64\nByte Order: Big Endian\n"})
    assert PlatformDetector(root=make_root(tmp_path), machine="mips64", run=run).detect_arch() == "mips64"


def test_rejects_non_linux(tmp_path):
    detector = PlatformDetector(root=make_root(tmp_path), system="Darwin", machine="x86_64", which=which_only("apt"))
    with pytest.raises(UnsupportedPlatformError) as exc:
        detector.detect()
    assert exc.value.kind == "os"


def test_rejects_missing_os_release(tmp_path):
    detector = PlatformDetector(root=make_root(tmp_path, os_release=False), system="Linux", machine="x86_64",
                          which=which_only("apt"))
    with pytest.raises(UnsupportedPlatformError) as exc:
        detector.detect()
    assert exc.value.kind == "os"


def test_rejects_host_without_systemd(tmp_path):
    detector = PlatformDetector(root=make_root(tmp_path, systemd=False), system="Linux", machine="x86_64",
                          which=which_only("apt"))
    with pytest.raises(UnsupportedPlatformError) as exc:
        detector.detect()
    assert exc.value.kind == "init"


def test_container_with_systemctl_is_accepted(tmp_path):
    root = make_root(tmp_path, systemd=False)
    (root / ".dockerenv").write_text("")
    detector = PlatformDetector(root=root, system="Linux", machine="x86_64", which=which_only("apt", "systemctl"))
    assert detector.detect().package_manager.name == "apt"


def test_rejects_unknown_package_manager(tmp_path):
    detector = PlatformDetector(root=make_root(tmp_path), system="Linux", machine="x86_64", which=which_only())
    with pytest.raises(UnsupportedPlatformError) as exc:
        detector.detect()
    assert exc.value.kind == "package-manager"


def test_package_manager_priority(tmp_path):
    detector = PlatformDetector(root=make_root(tmp_path), system="Linux", machine="x86_64", which=which_only("yum", "dnf"))
    manager = detector.detect().package_manager
    assert manager.name == "dnf"
    assert manager.install_command("curl") == ["dnf", "-y", "install", "curl"]
