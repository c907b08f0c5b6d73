"""Publishing: article assembly and the Ghost Admin API client."""

from vid2post.publish.document import ArticleParts, DraftPost, assemble_body, build_draft  # noqa: F401
from vid2post.publish.ghost import GhostAdminClient, admin_token  # noqa: F401
