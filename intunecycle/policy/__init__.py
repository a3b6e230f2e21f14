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

"""Publish policy for intunecycle.

Modules:

publish : module
    Lock/duplicate checks and the settings of a single publish.

Public API:

PublishPolicy : class
    Retention, lock, force, offsets and default deployments.
check_publishable : function
    Return why a version may not be published, or None.
policy_from_config : function
    Build a PublishPolicy from a merged recipe configuration.

Example:
    from intunecycle.policy import PublishPolicy, check_publishable

    reason = check_publishable("19.42.3.442", family, PublishPolicy(lock_pattern="19.42.2.x"))
    print(reason)  # "version 19.42.3.442 does not match version lock 19.42.2.x"

"""

from .publish import PublishPolicy, check_publishable, policy_from_config

__all__ = ["PublishPolicy", "check_publishable", "policy_from_config"]
