"""Resources, tools and prompts served by the built-in procedures."""

from mcp_relay.capabilities.catalog import (
    CapabilityCatalog,
    PromptEntry,
    ResourceEntry,
    ToolEntry,
)
from mcp_relay.capabilities.prompts import FilePrompt, Prompt, render_template
from mcp_relay.capabilities.resources import Resource, StaticResource
from mcp_relay.capabilities.tools import CommandTool, HttpTool, Tool

__all__ = [
    "CapabilityCatalog",
    "CommandTool",
    "FilePrompt",
    "HttpTool",
    "Prompt",
    "PromptEntry",
    "Resource",
    "ResourceEntry",
    "StaticResource",
    "Tool",
    "ToolEntry",
    "render_template",
]
