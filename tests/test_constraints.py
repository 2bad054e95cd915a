"""Tests for vmcatalog.constraints module."""

from __future__ import annotations

import pytest

from vmcatalog.constraints import apply_minimums
from vmcatalog.exceptions import BlueprintMinimumError
from vmcatalog.models import ResourceLimits, VirtualMachineDescription

GiB = 1024**3
LIMITS = ResourceLimits(min_cpus=2, min_mem=2 * GiB, min_disk=25 * GiB, min_mem_text="2G", min_disk_text="25G")


class TestApplyMinimums:
    def test_unset_values_take_minimums(self):
        vm_desc = VirtualMachineDescription()
        apply_minimums(vm_desc, LIMITS)
        assert (vm_desc.num_cores, vm_desc.mem_size, vm_desc.disk_space) == (2, 2 * GiB, 25 * GiB)

    def test_larger_values_kept(self):
        vm_desc = VirtualMachineDescription(num_cores=4, mem_size=8 * GiB, disk_space=100 * GiB)
        apply_minimums(vm_desc, LIMITS)
        assert (vm_desc.num_cores, vm_desc.mem_size, vm_desc.disk_space) == (4, 8 * GiB, 100 * GiB)

    def test_equal_values_accepted(self):
        vm_desc = VirtualMachineDescription(num_cores=2, mem_size=2 * GiB, disk_space=25 * GiB)
        apply_minimums(vm_desc, LIMITS)
        assert vm_desc.num_cores == 2

    def test_no_limits_is_noop(self):
        vm_desc = VirtualMachineDescription(num_cores=1)
        apply_minimums(vm_desc, ResourceLimits())
        assert (vm_desc.num_cores, vm_desc.mem_size, vm_desc.disk_space) == (1, 0, 0)

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"num_cores": 1}, "Number of CPUs value too small: got 1, the Blueprint requires at least 2"),
            ({"mem_size": GiB}, "Memory size value too small: got 1G, the Blueprint requires at least 2G"),
            ({"disk_space": 10 * GiB}, "Disk space value too small: got 10G, the Blueprint requires at least 25G"),
        ],
    )
    def test_too_small_raises(self, kwargs, message):
        vm_desc = VirtualMachineDescription(**kwargs)
        with pytest.raises(BlueprintMinimumError) as exc:
            apply_minimums(vm_desc, LIMITS)
        assert str(exc.value) == message

    def test_failure_leaves_description_untouched(self):
        vm_desc = VirtualMachineDescription(disk_space=GiB)
        with pytest.raises(BlueprintMinimumError) as exc:
            apply_minimums(vm_desc, LIMITS)
        assert exc.value.field == "Disk space"
        assert (vm_desc.num_cores, vm_desc.mem_size, vm_desc.disk_space) == (0, 0, GiB)
