#!/usr/bin/env python3

passedAssertions = 0


def pytest_assertion_pass(item, lineno, orig, expl):
    global passedAssertions
    passedAssertions += 1


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    # Only counted when running with: -o enable_assertion_pass_hook=true
    terminalreporter.write_line(f"{passedAssertions} assertions passed.")
