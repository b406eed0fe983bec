"""Client methods for Azure DevOps work item comments."""

import logging

from ado_sync.client import AdoClient
from ado_sync.document.models import Comment
from ado_sync.work_items.models import CommentResponse, CommentsPage

logger = logging.getLogger(__name__)

COMMENTS_API_VERSION = "7.1-preview.4"
COMMENTS_PAGE_SIZE = 100


class CommentsClient:
    """Client for Azure DevOps Work Items comments API operations."""

    def __init__(self, client: AdoClient):
        """
        Initialize the CommentsClient.

        Args:
            client: The AdoClient instance to use for API calls.
        """
        self.client = client

    def _comments_url(self, work_item_id: int) -> str:
        return f"{self.client.project_api_url}/wit/workitems/{work_item_id}/comments"

    def get_comments_page(
        self,
        work_item_id: int,
        top: int = COMMENTS_PAGE_SIZE,
        continuation_token: str | None = None,
    ) -> CommentsPage:
        """Fetch one page of comments for a work item."""
        params: dict[str, object] = {"$top": top}
        if continuation_token:
            params["continuationToken"] = continuation_token

        data = self.client.get(
            self._comments_url(work_item_id), params=params, api_version=COMMENTS_API_VERSION
        )
        return CommentsPage(**(data or {}))

    def get_all_comments(self, work_item_id: int) -> list[Comment]:
        """
        Fetch every comment on a work item.

        Pages of 100 are requested until a short page arrives (or the server
        stops handing out continuation tokens).
        """
        comments: list[Comment] = []
        continuation_token = None

        while True:
            page = self.get_comments_page(work_item_id, continuation_token=continuation_token)
            comments.extend(_to_comment(comment) for comment in page.comments)

            if page.count < COMMENTS_PAGE_SIZE or not page.continuationToken:
                break
            continuation_token = page.continuationToken

        logger.debug(f"Retrieved {len(comments)} comments for work item {work_item_id}")
        return comments

    def add_comment(self, work_item_id: int, text: str) -> Comment:
        """Add a comment to a work item."""
        logger.info(f"Adding comment to work item {work_item_id}")
        data = self.client.post(
            self._comments_url(work_item_id), json={"text": text}, api_version=COMMENTS_API_VERSION
        )
        return _to_comment(CommentResponse(**data))


def _to_comment(comment: CommentResponse) -> Comment:
    return Comment(
        id=comment.id,
        author=comment.createdBy.name,
        date=comment.createdDate,
        text=comment.text,
    )
