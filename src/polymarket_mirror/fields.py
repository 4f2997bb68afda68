"""Field-type tables for the mirrored Gamma API entities."""

from __future__ import annotations

from .schema import (ChildRelation, EmbeddedRelation, SchemaRegistry,
                     build_entity)

EVENT_FIELD_TYPES = {
    "id": "string",
    "ticker": "string",
    "slug": "string",
    "title": "string",
    "subtitle": "string",
    "description": "string",
    "resolutionSource": "string",
    "startDate": "date",
    "creationDate": "date",
    "endDate": "date",
    "image": "string",
    "icon": "string",
    "active": "boolean",
    "closed": "boolean",
    "archived": "boolean",
    "new": "boolean",
    "featured": "boolean",
    "restricted": "boolean",
    "liquidity": "number",
    "volume": "number",
    "openInterest": "number",
    "sortBy": "string",
    "category": "string",
    "subcategory": "string",
    "isTemplate": "boolean",
    "templateVariables": "string",
    "publishedAt": "string",
    "createdBy": "string",
    "updatedBy": "string",
    "createdAt": "date",
    "updatedAt": "date",
    "commentsEnabled": "boolean",
    "competitive": "number",
    "volume24hr": "number",
    "volume1wk": "number",
    "volume1mo": "number",
    "volume1yr": "number",
    "featuredImage": "string",
    "disqusThread": "string",
    "parentEventId": "string",
    "enableOrderBook": "boolean",
    "liquidityAmm": "number",
    "liquidityClob": "number",
    "negRisk": "boolean",
    "negRiskMarketID": "string",
    "negRiskFeeBips": "number",
    "commentCount": "number",
    "imageOptimized": "json",
    "iconOptimized": "json",
    "featuredImageOptimized": "json",
    "cyom": "boolean",
    "closedTime": "date",
    "showAllOutcomes": "boolean",
    "showMarketImages": "boolean",
    "automaticallyResolved": "boolean",
    "enableNegRisk": "boolean",
    "automaticallyActive": "boolean",
    "eventDate": "string",
    "startTime": "date",
    "eventWeek": "number",
    "seriesSlug": "string",
    "score": "string",
    "elapsed": "string",
    "period": "string",
    "live": "boolean",
    "ended": "boolean",
    "finishedTimestamp": "date",
    "gmpChartMode": "string",
    "eventCreators": "json",
    "tweetCount": "number",
    "chats": "json",
    "featuredOrder": "number",
    "estimateValue": "boolean",
    "cantEstimate": "boolean",
    "estimatedValue": "string",
    "templates": "json",
    "spreadsMainLine": "number",
    "totalsMainLine": "number",
    "carouselMap": "string",
    "pendingDeployment": "boolean",
    "deploying": "boolean",
    "deployingTimestamp": "date",
    "scheduledDeploymentTimestamp": "date",
    "gameStatus": "string",
}

MARKET_FIELD_TYPES = {
    "id": "string",
    "question": "string",
    "conditionId": "string",
    "slug": "string",
    "twitterCardImage": "string",
    "resolutionSource": "string",
    "endDate": "date",
    "category": "string",
    "ammType": "string",
    "liquidity": "string",
    "sponsorName": "string",
    "sponsorImage": "string",
    "startDate": "date",
    "xAxisValue": "string",
    "yAxisValue": "string",
    "denominationToken": "string",
    "fee": "string",
    "image": "string",
    "icon": "string",
    "lowerBound": "string",
    "upperBound": "string",
    "description": "string",
    "outcomes": "string",
    "outcomePrices": "string",
    "volume": "string",
    "active": "boolean",
    "marketType": "string",
    "formatType": "string",
    "lowerBoundDate": "string",
    "upperBoundDate": "string",
    "closed": "boolean",
    "marketMakerAddress": "string",
    "createdBy": "number",
    "updatedBy": "number",
    "createdAt": "date",
    "updatedAt": "date",
    "closedTime": "string",
    "wideFormat": "boolean",
    "new": "boolean",
    "mailchimpTag": "string",
    "featured": "boolean",
    "archived": "boolean",
    "resolvedBy": "string",
    "restricted": "boolean",
    "marketGroup": "number",
    "groupItemTitle": "string",
    "groupItemThreshold": "string",
    "questionID": "string",
    "umaEndDate": "string",
    "enableOrderBook": "boolean",
    "orderPriceMinTickSize": "number",
    "orderMinSize": "number",
    "umaResolutionStatus": "string",
    "curationOrder": "number",
    "volumeNum": "number",
    "liquidityNum": "number",
    "endDateIso": "string",
    "startDateIso": "string",
    "umaEndDateIso": "string",
    "hasReviewedDates": "boolean",
    "readyForCron": "boolean",
    "commentsEnabled": "boolean",
    "volume24hr": "number",
    "volume1wk": "number",
    "volume1mo": "number",
    "volume1yr": "number",
    "gameStartTime": "string",
    "secondsDelay": "number",
    "clobTokenIds": "string",
    "disqusThread": "string",
    "shortOutcomes": "string",
    "teamAID": "string",
    "teamBID": "string",
    "umaBond": "string",
    "umaReward": "string",
    "fpmmLive": "boolean",
    "volume24hrAmm": "number",
    "volume1wkAmm": "number",
    "volume1moAmm": "number",
    "volume1yrAmm": "number",
    "volume24hrClob": "number",
    "volume1wkClob": "number",
    "volume1moClob": "number",
    "volume1yrClob": "number",
    "volumeAmm": "number",
    "volumeClob": "number",
    "liquidityAmm": "number",
    "liquidityClob": "number",
    "makerBaseFee": "number",
    "takerBaseFee": "number",
    "customLiveness": "number",
    "acceptingOrders": "boolean",
    "notificationsEnabled": "boolean",
    "score": "number",
    "imageOptimized": "json",
    "iconOptimized": "json",
    "creator": "string",
    "ready": "boolean",
    "funded": "boolean",
    "pastSlugs": "string",
    "readyTimestamp": "date",
    "fundedTimestamp": "date",
    "acceptingOrdersTimestamp": "date",
    "competitive": "number",
    "rewardsMinSize": "number",
    "rewardsMaxSpread": "number",
    "spread": "number",
    "automaticallyResolved": "boolean",
    "oneDayPriceChange": "number",
    "oneHourPriceChange": "number",
    "oneWeekPriceChange": "number",
    "oneMonthPriceChange": "number",
    "oneYearPriceChange": "number",
    "lastTradePrice": "number",
    "bestBid": "number",
    "bestAsk": "number",
    "automaticallyActive": "boolean",
    "clearBookOnStart": "boolean",
    "chartColor": "string",
    "seriesColor": "string",
    "showGmpSeries": "boolean",
    "showGmpOutcome": "boolean",
    "manualActivation": "boolean",
    "negRiskOther": "boolean",
    "gameId": "string",
    "groupItemRange": "string",
    "sportsMarketType": "string",
    "line": "number",
    "umaResolutionStatuses": "string",
    "pendingDeployment": "boolean",
    "deploying": "boolean",
    "deployingTimestamp": "date",
    "scheduledDeploymentTimestamp": "date",
    "rfqEnabled": "boolean",
    "eventStartTime": "date",
    "eventId": "string",
}

# Upstream keys that differ from the stored field name.
EVENT_FIELD_SOURCES = {
    "publishedAt": "published_at",
    "parentEventId": "parentEvent",
}


def build_registry() -> SchemaRegistry:
    events = build_entity(
        "events",
        EVENT_FIELD_TYPES,
        sources=EVENT_FIELD_SOURCES,
        children=(ChildRelation(name="markets", kind="markets", parent_key="eventId"),),
        embeds=(
            EmbeddedRelation(
                name="markets",
                kind="markets",
                local_field="id",
                remote_field="eventId",
                many=True,
            ),
        ),
    )
    markets = build_entity(
        "markets",
        MARKET_FIELD_TYPES,
        embeds=(
            EmbeddedRelation(
                name="event",
                kind="events",
                local_field="eventId",
                remote_field="id",
                many=False,
            ),
        ),
    )
    return SchemaRegistry.of(events, markets)


REGISTRY = build_registry()
