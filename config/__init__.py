# config package: authoritative source for all matcher configuration.
#
# Sub-modules:
#   api_config.py   classifier endpoints, authentication, default model
#   run_params.py   Config-tab defaults and clamps, chunking, run-log layout
#
# Runtime overrides live in the store's "Config" tab (Key / Value / Help),
# which is read fresh at the start of every chunk invocation.
