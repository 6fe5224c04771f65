"""
QScanner lifecycle: verified binary fetch, process invocation, exit-code
interpretation, SARIF aggregation, and the AWS helpers used around a scan.
"""
