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

"""Layered YAML configuration for intunecycle recipes.

Organization defaults (defaults/org.yaml), optional publisher defaults
(defaults/vendors/<Publisher>.yaml) and the recipe are deep-merged: dicts
merge recursively, lists and scalars are replaced.

Example:
    ```python
    from pathlib import Path
    from intunecycle.config import load_effective_config

    config = load_effective_config(Path("recipes/rstudio.yaml"))
    print(config["displayName"])  # "RStudio"
    ```
"""

from .loader import LoadContext, load_config_layers, load_effective_config

__all__ = ["LoadContext", "load_config_layers", "load_effective_config"]
