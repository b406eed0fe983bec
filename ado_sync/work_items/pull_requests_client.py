"""Resolution of pull requests linked to work items."""

import logging
import re
from urllib.parse import unquote

from ado_sync.client import AdoClient
from ado_sync.document.models import LinkedPullRequest
from ado_sync.errors import AdoSyncError
from ado_sync.work_items.models import AdoWorkItem, PullRequestResponse, WorkItemRelationType

logger = logging.getLogger(__name__)

PULL_REQUEST_LINK_NAME = "Pull Request"

# vstfs:///Git/PullRequestId/{project}/{repository}/{pullRequestId}
_ARTIFACT_URL = re.compile(r"vstfs:///Git/PullRequestId/[^/]+/([^/]+)/(\d+)")


def parse_pull_request_artifact(url: str) -> tuple[str, int] | None:
    """Extract ``(repository, pull_request_id)`` from a PR artifact link URL."""
    match = _ARTIFACT_URL.search(unquote(url))
    if not match:
        return None
    return match.group(1), int(match.group(2))


class PullRequestsClient:
    """Client for Azure DevOps Git pull request lookups."""

    def __init__(self, client: AdoClient):
        self.client = client

    def get_pull_request(self, repository: str, pull_request_id: int) -> LinkedPullRequest:
        url = f"{self.client.project_api_url}/git/repositories/{repository}/pullrequests/{pull_request_id}"
        response = PullRequestResponse(**self.client.get(url))
        return LinkedPullRequest(
            id=response.pullRequestId,
            title=response.title,
            status=response.status,
            url=self.client.pull_request_web_url(repository, pull_request_id),
            repository=response.repository.get("name", repository),
        )

    def get_linked_pull_requests(self, work_item: AdoWorkItem) -> list[LinkedPullRequest]:
        """
        Resolve the ``ArtifactLink`` relations named "Pull Request" on a work item.

        The work item must have been fetched with relations expanded.
        Relations whose URL cannot be parsed or whose pull request cannot be
        read are skipped.
        """
        pull_requests: list[LinkedPullRequest] = []

        for relation in work_item.relations or []:
            if relation.rel != WorkItemRelationType.ARTIFACT_LINK.value:
                continue
            if (relation.attributes or {}).get("name") != PULL_REQUEST_LINK_NAME:
                continue

            parsed = parse_pull_request_artifact(relation.url)
            if parsed is None:
                logger.debug(f"Unrecognized pull request link on {work_item.id}: {relation.url}")
                continue

            repository, pull_request_id = parsed
            try:
                pull_requests.append(self.get_pull_request(repository, pull_request_id))
            except AdoSyncError as e:
                logger.warning(
                    f"Skipping pull request {pull_request_id} in {repository} "
                    f"linked to work item {work_item.id}: {e}"
                )

        return pull_requests
