"""Prompt templates offered to clients."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from content.base import ContentStore
from wpmcp.errors import MCPError


class PromptArgument(BaseModel):
    name: str
    description: str
    required: bool = False


class Prompt(BaseModel):
    name: str
    description: str
    arguments: list[PromptArgument] = Field(default_factory=list)


PROMPTS: dict[str, Prompt] = {
    "create_post": Prompt(
        name="create_post",
        description="Create a new WordPress post",
        arguments=[
            PromptArgument(name="title", description="Post title", required=True),
            PromptArgument(name="content", description="Post content", required=True),
            PromptArgument(name="excerpt", description="Post excerpt"),
            PromptArgument(name="status", description="Post status (publish, draft, etc.)"),
        ],
    ),
    "analyze_content": Prompt(
        name="analyze_content",
        description="Analyze WordPress content",
        arguments=[
            PromptArgument(
                name="content_type",
                description="Type of content to analyze (post, page, etc.)",
                required=True
            ),
            PromptArgument(name="content_id", description="ID of the content to analyze", required=True),
        ],
    ),
    "seo_optimize": Prompt(
        name="seo_optimize",
        description="Generate SEO recommendations for content",
        arguments=[
            PromptArgument(name="content", description="Content to optimize", required=True),
            PromptArgument(name="keywords", description="Target keywords"),
        ],
    ),
    "generate_excerpt": Prompt(
        name="generate_excerpt",
        description="Generate an excerpt from post content",
        arguments=[
            PromptArgument(name="content", description="Post content", required=True),
            PromptArgument(name="length", description="Desired excerpt length in words"),
        ],
    ),
}

DEFAULT_EXCERPT_LENGTH = 55


def _user_message(text: str) -> dict[str, Any]:
    return {"role": "user", "content": {"type": "text", "text": text}}


class PromptLibrary:
    """Renders the fixed prompt set into user messages."""

    def __init__(self, store: Optional[ContentStore] = None) -> None:
        self.store = store

    def list(self) -> dict[str, list[Prompt]]:
        return {"prompts": list(PROMPTS.values())}

    def get(self, name: str, arguments: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Render a prompt.

        Raises:
            MCPError: ``prompt_not_found`` for an unknown name,
                ``missing_argument`` for an absent or empty required argument
        """
        prompt = PROMPTS.get(name)
        if prompt is None:
            raise MCPError("prompt_not_found", f"Prompt not found: {name}", {"name": name})

        arguments = arguments or {}
        for arg in prompt.arguments:
            if arg.required and not arguments.get(arg.name):
                raise MCPError(
                    "missing_argument",
                    f"Missing required argument: {arg.name}",
                    {"argument": arg.name}
                )

        render = getattr(self, f"_render_{name}")
        return render(arguments)

    def _render_create_post(self, args: dict[str, Any]) -> dict[str, Any]:
        title = args["title"]
        text = f"I'd like to create a new WordPress post with the following details:\n\nTitle: {title}\nContent: {args['content']}"
        if args.get("excerpt"):
            text += f"\nExcerpt: {args['excerpt']}"
        text += f"\nStatus: {args.get('status') or 'draft'}\n\nPlease format this as a well-structured post."
        return {
            "description": f"Create a new WordPress post with title: {title}",
            "messages": [_user_message(text)],
        }

    def _render_analyze_content(self, args: dict[str, Any]) -> dict[str, Any]:
        content_type = str(args["content_type"])
        content_id = str(args["content_id"])

        title = ""
        body = ""
        if self.store is not None and content_type in ("post", "page"):
            item = self.store.get_item(f"{content_type}s", content_id)
            if item is not None:
                title = item.title
                body = item.content

        text = (
            f"Please analyze the following WordPress {content_type} content:\n\n"
            f"Title: {title}\n\nContent:\n{body}\n\n"
            "Provide insights on readability, structure, engagement potential, "
            "and suggestions for improvement."
        )
        return {
            "description": f"Analyze {content_type} content with ID: {content_id}",
            "messages": [_user_message(text)],
        }

    def _render_seo_optimize(self, args: dict[str, Any]) -> dict[str, Any]:
        keywords = args.get("keywords") or ""
        description = "Generate SEO recommendations for content"
        text = "Please provide SEO optimization recommendations for the following content:"
        if keywords:
            description += f" targeting keywords: {keywords}"
            text += f"\n\nTarget keywords: {keywords}"
        text += (
            f"\n\nContent:\n{args['content']}\n\n"
            "Include suggestions for title, meta description, headings, content structure, "
            "keyword density, and internal linking."
        )
        return {"description": description, "messages": [_user_message(text)]}

    def _render_generate_excerpt(self, args: dict[str, Any]) -> dict[str, Any]:
        length = args.get("length") or DEFAULT_EXCERPT_LENGTH
        text = (
            f"Please generate a compelling excerpt of approximately {length} words from the "
            "following post content. The excerpt should capture the essence of the content "
            f"and encourage readers to continue reading.\n\nContent:\n{args['content']}"
        )
        return {
            "description": f"Generate an excerpt from post content (target length: {length} words)",
            "messages": [_user_message(text)],
        }
