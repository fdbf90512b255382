"""
LLM agent package.

- client: OpenAI completions (text and image)
- prompts: system, turn and follow-up prompt rendering
- tools: typed tool requests and the ToolRegistry that executes them
- orchestrator: the two-phase turn (model call, tools, follow-up call)
"""
