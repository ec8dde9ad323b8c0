"""SpaceMarket marketplace client libraries."""
