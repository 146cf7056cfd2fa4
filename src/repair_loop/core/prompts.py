"""Prompt templates for repair completions.

System prompts fix the rules for each strategy; the builders fill in the
error and context. Error text is inserted as given, so callers redact it
first.
"""

from __future__ import annotations

from repair_loop.models.context import SmartContext
from repair_loop.models.errors import AnalyzedError

TARGETED_FIX_SYSTEM_PROMPT = """You are an expert code fixer. \
Your task is to fix a specific error in React/TypeScript code.

RULES:
1. Fix ONLY the error mentioned - don't change anything else
2. Return ONLY the fixed code section, no explanations
3. Preserve the exact formatting and indentation
4. Do NOT add new imports or dependencies
5. Keep variable names and structure intact
6. Ensure valid TypeScript/JSX syntax
7. NEVER use malformed Fragment syntax like </<> - use proper <> and </> pairs
8. All JSX tags must be properly closed with matching tags
9. Ensure self-closing tags like <input /> are valid"""

INCREMENTAL_FIX_SYSTEM_PROMPT = """You are an expert code fixer. \
Your task is to rewrite a section of React/TypeScript code to fix an error.

RULES:
1. Fix the error while preserving functionality
2. Return the COMPLETE fixed function/section
3. Maintain the function signature and name
4. Use proper TypeScript types for parameters
5. Do NOT change the function's public interface
6. Do NOT add explanation - just code
7. NEVER use malformed Fragment syntax like </<> - use proper <> and </> pairs
8. Ensure all JSX tags are properly closed and nested"""

FULL_REGENERATION_SYSTEM_PROMPT = """You are an expert React developer. \
Your task is to regenerate a complete React component \
that has an error which could not be fixed in place.

RULES:
1. Generate a COMPLETE, working React component
2. Fix the mentioned error
3. Maintain the same functionality as the original
4. Include proper TypeScript types
5. Handle loading, error, and empty states
6. Return ONLY the code, no explanation
7. NEVER use malformed Fragment syntax like </<> - use proper <> and </> pairs
8. Ensure ALL JSX tags are properly closed with matching opening and closing tags"""


def _error_block(analysis: AnalyzedError, message: str) -> str:
    return (
        f"ERROR MESSAGE: {message}\n"
        f"ROOT CAUSE: {analysis.root_cause}\n"
        f"SUGGESTION: {analysis.suggestion}"
    )


def build_targeted_fix_prompt(
    analysis: AnalyzedError,
    message: str,
    context_section: str,
    context: SmartContext,
) -> str:
    """Prompt asking for a replacement of the context window only."""
    window = context.surrounding_range
    return f"""Fix this {analysis.category} error in the code:

{_error_block(analysis, message)}

{context_section}

Return ONLY the fixed code section (lines {window.start_line}-{window.end_line}).
Do NOT include line numbers or markers in your response.
Do NOT add new imports or dependencies.
Do NOT include explanation - just the fixed code."""


def build_incremental_fix_prompt(
    analysis: AnalyzedError,
    message: str,
    context_section: str,
    context: SmartContext,
) -> str:
    """Prompt asking for the complete enclosing function."""
    parts = [
        f"Fix this {analysis.category} error by rewriting the affected section:",
        "",
        _error_block(analysis, message),
        "",
    ]
    if context.affected_function_name:
        parts += [f"The error is in function/component: {context.affected_function_name}", ""]

    parts += [context_section, ""]

    if context.affected_function:
        parts += ["CURRENT FUNCTION CODE:", "```", context.affected_function, "```", ""]

    parts += [
        "Return the COMPLETE fixed function/section.",
        "Preserve:",
        "- The function signature and name",
        "- The overall structure",
        "- Variable names where possible",
        "",
        "Do NOT include explanation - just the fixed code.",
    ]
    return "\n".join(parts)


def build_full_regeneration_prompt(
    analysis: AnalyzedError,
    message: str,
    code: str,
    context: SmartContext,
    original_prompt: str | None = None,
) -> str:
    """Prompt asking for the whole component again."""
    location = f"ERROR LOCATION: Line {context.error_location.line}"
    if context.error_location.column:
        location += f", Column {context.error_location.column}"

    parts = [
        "The following code has an error that couldn't be fixed incrementally.",
        "Please regenerate the ENTIRE component with the error fixed.",
        "",
    ]
    if original_prompt:
        parts += [f"ORIGINAL USER REQUEST: {original_prompt}", ""]

    parts += [
        _error_block(analysis, message),
        location,
        "",
        "CURRENT CODE (WITH ERROR):",
        "```",
        code,
        "```",
        "",
        "Generate a COMPLETE, working component that:",
        f"1. Fixes the {analysis.category} error",
        "2. Maintains the same functionality as the original",
        "3. Uses proper React patterns and TypeScript types",
        "",
        "Return ONLY the fixed code, no explanation.",
    ]
    return "\n".join(parts)


def build_correction_prompt(
    original_prompt: str,
    code: str,
    error_log: str,
    analysis: AnalyzedError,
) -> str:
    """Whole-file correction prompt used when no smart context is available."""
    return f"""CRITICAL: The previous code generation failed with compilation/runtime errors.
Please analyze the error and regenerate the code with strict TypeScript fixes.

ORIGINAL REQUEST:
{original_prompt}

GENERATED CODE (WITH ERRORS):
```typescript
{code}
```

ERROR LOG:
{error_log}

ERROR ANALYSIS:
Category: {analysis.category}
Cause: {analysis.root_cause}
Suggestion: {analysis.suggestion}

CORRECTION REQUIREMENTS:
1. Fix the specific error described above.
2. Ensure strict TypeScript compliance:
   - No implicit 'any' types
   - All function parameters must have explicit types
   - All useState hooks must have explicit type arguments
3. Ensure the code still meets the original requirements.
4. Return ONLY the corrected code."""


def build_context_fix_prompt(
    original_prompt: str,
    analysis: AnalyzedError,
    message: str,
    context_section: str,
    context: SmartContext,
) -> str:
    """Context-only correction prompt used once a smart context exists."""
    window = context.surrounding_range
    return f"""CRITICAL: Fix this error in the generated React code.

ORIGINAL REQUEST:
{original_prompt}

ERROR TYPE: {analysis.category}
ERROR MESSAGE: {message}
ROOT CAUSE: {analysis.root_cause}
SUGGESTION: {analysis.suggestion}

{context_section}

REQUIREMENTS:
1. Fix ONLY the error - preserve all other functionality
2. Use proper TypeScript types
3. Use proper React event types
4. Return ONLY the fixed code section

Return the fixed code for lines {window.start_line}-{window.end_line}"""
