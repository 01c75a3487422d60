"""Editor and reader tooling that talks to the content proxy."""

from .feed import SectionLoader, SectionState, fetch_section
from .gateway import ContentGateway, ProxyClient, ProxyError, create_proxy_http_client
from .workflow import CommitWorkflow, EditorState, PostForm, WorkflowError

__all__ = [
    "CommitWorkflow",
    "ContentGateway",
    "EditorState",
    "PostForm",
    "ProxyClient",
    "ProxyError",
    "SectionLoader",
    "SectionState",
    "WorkflowError",
    "create_proxy_http_client",
    "fetch_section",
]
