"""Banner templates for the end of a run."""

REPORT_HEADER = """
# Must-gather complete
"""

REPORT_SECTION_BUNDLE = """
**Bundle:** `{dest_dir}`

**Log:** `{log_file}`
"""

REPORT_SECTION_TALLY = """
## Calls
- written: {written}
- skipped: {skipped}
- failed: {failed}
"""

REPORT_SECTION_STAGES = """
## Stages
{stages}
"""

REPORT_SECTION_FAILURES = """
## Failures
{failures}
"""
