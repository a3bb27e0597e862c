"""HTTP API for requesting and inspecting credit verifications."""
