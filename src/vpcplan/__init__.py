import warnings

# Google SDK FutureWarnings (interpreter deprecation notices) would otherwise
# land on stderr between plan tables and interleave with `--json` runs.
warnings.filterwarnings("ignore", category=FutureWarning, module="google.api_core")
warnings.filterwarnings("ignore", category=FutureWarning, module="google.cloud")
