# Copyright 2024 Heinrich Krupp
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

"""
FastAPI dependencies for the HTTP interface.

Components are read from the ``SearchContainer`` the application lifespan
stores on ``app.state``; tests replace these dependencies through
``app.dependency_overrides``.
"""

import logging

from fastapi import Depends, HTTPException, Request

from ..config import SearchSettings
from ..container import SearchContainer
from ..services.analytics_aggregator import SearchAnalyticsAggregator
from ..services.analytics_recorder import AnalyticsRecorder
from ..services.search_optimizer import SearchOptimizer
from ..services.search_service import SearchService

logger = logging.getLogger(__name__)


def get_container(request: Request) -> SearchContainer:
    """Get the application's search container."""
    container: SearchContainer | None = getattr(request.app.state, "container", None)
    if container is None or not container.initialized:
        raise HTTPException(status_code=503, detail="Search service not initialized")
    return container


def get_search_service(container: SearchContainer = Depends(get_container)) -> SearchService:
    return container.search_service


def get_search_optimizer(container: SearchContainer = Depends(get_container)) -> SearchOptimizer:
    return container.optimizer


def get_analytics_aggregator(container: SearchContainer = Depends(get_container)) -> SearchAnalyticsAggregator:
    return container.aggregator


def get_analytics_recorder(container: SearchContainer = Depends(get_container)) -> AnalyticsRecorder:
    return container.recorder


def get_search_settings(container: SearchContainer = Depends(get_container)) -> SearchSettings:
    return container.settings.search
