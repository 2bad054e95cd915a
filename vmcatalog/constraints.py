"""Apply Blueprint resource minimums to a VM description."""

from __future__ import annotations

from typing import List, Tuple

from vmcatalog.exceptions import BlueprintMinimumError
from vmcatalog.models import ResourceLimits, VirtualMachineDescription
from vmcatalog.utils import format_size


def apply_minimums(vm_desc: VirtualMachineDescription, limits: ResourceLimits) -> None:
    """Raise unset values to the Blueprint minimums.

    A value the caller set explicitly is never lowered; one below the minimum
    raises BlueprintMinimumError. Every field is checked before any is
    written, so a failed merge leaves ``vm_desc`` untouched.
    """
    checks = [
        ("num_cores", "Number of CPUs", limits.min_cpus, str(limits.min_cpus), str),
        ("mem_size", "Memory size", limits.min_mem, limits.min_mem_text, format_size),
        ("disk_space", "Disk space", limits.min_disk, limits.min_disk_text, format_size),
    ]

    updates: List[Tuple[str, int]] = []
    for attr, label, minimum, minimum_text, render in checks:
        if minimum is None:
            continue
        current = getattr(vm_desc, attr)
        if not current:
            updates.append((attr, minimum))
        elif current < minimum:
            raise BlueprintMinimumError(label, render(current), minimum_text or render(minimum))

    for attr, value in updates:
        setattr(vm_desc, attr, value)
