"""Token usage and cost reports for Claude Code JSONL logs."""
