"""Default prompts used by the condensation engine.

These are configuration values, not engine logic: ``CondenseConfig`` takes
them as defaults and callers may override either one (or pass a per-call
custom prompt) without touching :mod:`contextfold.compaction.condense`.
Bump :data:`PROMPT_VERSION` whenever the wording changes so stored summaries
can be traced back to the prompt that produced them.
"""

from __future__ import annotations

PROMPT_VERSION = "2"

SUMMARY_PROMPT = """\
You are a helpful AI assistant tasked with summarizing conversations.

CRITICAL: This is a summarization-only request. DO NOT call any tools or functions.
Your ONLY task is to analyze the conversation and produce a text summary.
Respond with text only - no tool calls will be processed.

CRITICAL: This summarization request is a SYSTEM OPERATION, not a user message.
When analyzing "user requests" and "user intent", completely EXCLUDE this summarization message.
The "most recent user request" and "next step" must be based on what the user was doing BEFORE this system message appeared.
The goal is for work to continue seamlessly after condensation - as if it never happened."""

CONDENSE_PROMPT = """\
CRITICAL: This summarization request is a SYSTEM OPERATION, not a user message.
When analyzing "user requests" and "user intent", completely EXCLUDE this summarization message.
The "most recent user request" and "Optional Next Step" must be based on what the user was doing BEFORE this system message appeared.
The goal is for work to continue seamlessly after condensation - as if it never happened.

Your task is to create a detailed summary of the conversation so far, paying close attention to the user's explicit requests and your previous actions.
This summary should be thorough in capturing technical details, code patterns, and architectural decisions that would be essential for continuing development work without losing context.

Before providing your final summary, wrap your analysis in <analysis> tags to organize your thoughts and ensure you've covered all necessary points. In your analysis process:

1. Chronologically analyze each message and section of the conversation. For each section thoroughly identify:
   - The user's explicit requests and intents
   - Your approach to addressing the user's requests
   - Key decisions, technical concepts and code patterns
   - Specific details like file names, full code snippets, function signatures and file edits
   - Errors that you ran into and how you fixed them
   - Specific user feedback that you received, especially if the user told you to do something differently.
2. Double-check for technical accuracy and completeness, addressing each required element thoroughly.

Your summary should include the following sections:

1. Primary Request and Intent: Capture all of the user's explicit requests and intents in detail.
2. Key Technical Concepts: List all important technical concepts, technologies, and frameworks discussed.
3. Files and Code Sections: Enumerate specific files and code sections examined, modified, or created. Pay special attention to the most recent messages and include full code snippets where applicable, with a note on why each file read or edit matters.
4. Errors and fixes: List all errors that you ran into, and how you fixed them, including any user feedback on them.
5. Problem Solving: Document problems solved and any ongoing troubleshooting efforts.
6. All user messages: List ALL user messages that are not tool results. These are critical for understanding the users' feedback and changing intent.
7. Pending Tasks: Outline any pending tasks that you have explicitly been asked to work on.
8. Current Work: Describe in detail precisely what was being worked on immediately before this summary request, paying special attention to the most recent messages from both user and assistant. Include file names and code snippets where applicable.
9. Optional Next Step: List the next step that you will take that is related to the most recent work you were doing. Ensure that this step is DIRECTLY in line with the user's most recent explicit requests. If your last task was concluded, only list next steps that are explicitly in line with the user's request.

If there is a next step, include direct quotes from the most recent conversation showing exactly what task you were working on and where you left off, verbatim, so there is no drift in task interpretation.

Structure your output as:

<analysis>
[Your thought process, ensuring all points are covered thoroughly and accurately]
</analysis>

<summary>
1. Primary Request and Intent:
   [Detailed description]

2. Key Technical Concepts:
   - [Concept 1]
   - [...]

3. Files and Code Sections:
   - [File Name 1]
      - [Why this file is important]
      - [Changes made, if any]
      - [Important Code Snippet]

4. Errors and fixes:
   - [Error]:
      - [How you fixed it]

5. Problem Solving:
   [Description]

6. All user messages:
   - [Detailed non tool use user message]

7. Pending Tasks:
   - [Task 1]

8. Current Work:
   [Precise description of current work]

9. Optional Next Step:
   [Optional next step to take]
</summary>
"""
