"""HTTP routers for the Tri-Stack bridge."""
