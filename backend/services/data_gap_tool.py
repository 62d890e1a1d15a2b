"""
Service layer - data gap reporting tool.
"""
import logging

from pydantic import BaseModel, Field

from agentic.agent import Tool, ToolResult, multi_line_prompt
from domain.models import CustomMessage, DataGap

logger = logging.getLogger(__name__)

DATA_GAP_TOOL_ID = "report_data_gap"


class DataGapArgs(BaseModel):
    title: str = Field(description="A short title summarizing the missing information")
    description: str = Field(
        description="A detailed description of what information is missing and why it would be useful"
    )


async def _report(args: DataGapArgs) -> ToolResult:
    logger.info(f"Data gap reported: {args.title}")
    return ToolResult(
        content="Data gap reported successfully. Thank you for the feedback.",
        custom_message=CustomMessage(data_gap=DataGap(title=args.title, description=args.description))
    )


def make_data_gap_tool() -> Tool:
    return Tool(
        id=DATA_GAP_TOOL_ID,
        description=multi_line_prompt([
            "Report a gap or missing information in the knowledge base.",
            "Use this when search_data returned results but they don't answer the user's query.",
            "Do NOT use this if search_data returned no results.",
            "Do NOT use this for questions unrelated to the knowledge base topic.",
        ]),
        execute=_report,
        args_schema=DataGapArgs
    )
