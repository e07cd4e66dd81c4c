"""
Ralphy integration

Downloads the upstream ralphy.sh autonomous coding loop, patches it for
OpenCode model selection and Git Bash compatibility, and runs it.

Modules:
    - patches: Fixed, ordered text patches applied to ralphy.sh
    - installer: Download, patch and install into ~/.ralphy
    - runner: Bash discovery, argument building, process invocation
"""
