# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Version lifecycle engine for intunecycle.

This package keeps an application family in the "current + N older" shape
while new versions are published.

Modules:

family : module
    Reads and orders the members of a family.
migration : module
    Moves assignments and dependents between version objects with
    read-after-write verification.
rotation : module
    Runs a complete publish: validate, migrate, rename, prune.

Example:
    from intunecycle.lifecycle import FamilyResolver, RotationController
    from intunecycle.policy import PublishPolicy

    family = FamilyResolver(directory).resolve("7-Zip")
    new_obj = next(obj for obj in family if obj.id == new_app_id)
    outcome = RotationController(directory).publish(
        new_obj, family, PublishPolicy(retention=1)
    )

"""

from .family import FamilyResolver, ordinal_of, slot_name, sort_family
from .migration import DateOffsets, MigrationProtocol, shift_window
from .rotation import RotationController

__all__ = [
    "FamilyResolver",
    "ordinal_of",
    "slot_name",
    "sort_family",
    "DateOffsets",
    "MigrationProtocol",
    "shift_window",
    "RotationController",
]
