# pinnacle_sales_bot: Flow marketplace sales monitor for Disney Pinnacle pins
# - Polls NFTStorefrontV2.ListingCompleted events over the Flow REST API
# - Decodes JSON-Cadence payloads, gates on collection type + USD threshold
# - Resolves buyer/seller from NonFungibleToken Withdrawn/Deposited in the same tx
# - Posts to X/Twitter (OAuth 1.0a, v1.1 media upload + v2 /tweets)

__version__ = "1.0.0"
