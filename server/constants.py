"""Centralized constants for workflow triggers, actions and node types.

This module provides a single source of truth for the trigger and action
catalogs, eliminating duplicate string arrays across the codebase.
"""

from typing import FrozenSet

# =============================================================================
# TRIGGERS
# =============================================================================

ORDER_TRIGGERS: FrozenSet[str] = frozenset([
    'order.created',
    'order.paid',
    'order.fulfilled',
    'order.cancelled',
    'order.refunded',
])

CUSTOMER_TRIGGERS: FrozenSet[str] = frozenset([
    'customer.created',
    'customer.updated',
    'customer.tag_added',
])

PRODUCT_TRIGGERS: FrozenSet[str] = frozenset([
    'product.created',
    'product.updated',
    'product.low_stock',
    'product.out_of_stock',
])

SUBSCRIPTION_TRIGGERS: FrozenSet[str] = frozenset([
    'subscription.created',
    'subscription.renewed',
    'subscription.cancelled',
    'subscription.payment_failed',
])

REVIEW_TRIGGERS: FrozenSet[str] = frozenset([
    'review.created',
    'review.approved',
    'review.reported',
])

AUCTION_TRIGGERS: FrozenSet[str] = frozenset([
    'auction.started',
    'auction.bid_placed',
    'auction.ending_soon',
    'auction.ended',
])

COMMERCE_TRIGGERS: FrozenSet[str] = frozenset([
    'cart.abandoned',
    'cart.recovered',
    'giftcard.purchased',
    'giftcard.redeemed',
    'giftcard.low_balance',
    'loyalty.points_earned',
    'loyalty.tier_changed',
    'loyalty.reward_redeemed',
    'referral.signup',
    'referral.conversion',
])

INBOUND_TRIGGERS: FrozenSet[str] = frozenset([
    'inbox.email_received',
    'inbox.email_replied',
    'webhook.received',
    'form.submitted',
])

CRON_TRIGGER = 'schedule.cron'
INTERVAL_TRIGGER = 'schedule.interval'
MANUAL_TRIGGER = 'manual.trigger'

SCHEDULE_TRIGGERS: FrozenSet[str] = frozenset([CRON_TRIGGER, INTERVAL_TRIGGER])

WORKFLOW_TRIGGERS: FrozenSet[str] = (
    ORDER_TRIGGERS |
    CUSTOMER_TRIGGERS |
    PRODUCT_TRIGGERS |
    SUBSCRIPTION_TRIGGERS |
    REVIEW_TRIGGERS |
    AUCTION_TRIGGERS |
    COMMERCE_TRIGGERS |
    INBOUND_TRIGGERS |
    SCHEDULE_TRIGGERS |
    frozenset([MANUAL_TRIGGER])
)

# Trigger prefixes that get a typed view in the execution context
# (order.* -> context.order, customer.* -> context.customer, ...)
TYPED_VIEW_ROOTS: tuple = (
    'order',
    'customer',
    'product',
    'subscription',
    'review',
    'auction',
)

# =============================================================================
# ACTIONS
# =============================================================================

CONDITION_ACTION = 'condition.if'
DELAY_ACTION = 'delay.wait'
DELAY_UNTIL_ACTION = 'delay.wait_until'

# Recognized by the dispatcher but executed by the graph executor itself
SEPARATELY_HANDLED_ACTIONS: FrozenSet[str] = frozenset([
    CONDITION_ACTION,
    DELAY_ACTION,
    DELAY_UNTIL_ACTION,
])

STORE_ACTIONS: FrozenSet[str] = frozenset([
    'email.send',
    'email.send_template',
    'notification.push',
    'notification.sms',
    'customer.add_tag',
    'customer.remove_tag',
    'customer.update_field',
    'order.add_note',
    'order.update_status',
    'product.update_stock',
])

AI_ACTIONS: FrozenSet[str] = frozenset([
    'ai.generate_text',
    'ai.analyze_sentiment',
    'ai.categorize',
    'ai.translate',
    'ai.summarize',
    'gemini.generate',
    'perplexity.search',
    'elevenlabs.text_to_speech',
    'deepgram.transcribe',
    'stability.generate_image',
])

SOCIAL_ACTIONS: FrozenSet[str] = frozenset([
    'twitter.post',
    'twitter.dm',
    'facebook.post',
    'facebook.message',
    'instagram.post',
    'instagram.story',
    'linkedin.post',
    'tiktok.post',
    'pinterest.pin',
    'threads.post',
])

MESSAGING_ACTIONS: FrozenSet[str] = frozenset([
    'slack.send_message',
    'discord.send_message',
    'discord.create_thread',
    'teams.send_message',
    'telegram.send_message',
    'whatsapp.send_message',
    'intercom.send_message',
    'twilio.send_sms',
    'twilio.make_call',
    'vonage.send_sms',
    'messagebird.send_message',
])

PRODUCTIVITY_ACTIONS: FrozenSet[str] = frozenset([
    'google_sheets.add_row',
    'google_sheets.update_row',
    'google_docs.create',
    'google_slides.create',
    'google_drive.upload',
    'google_drive.create_folder',
    'google_calendar.create_event',
    'gmail.send',
    'outlook.send_email',
    'excel.add_row',
    'word.create_doc',
    'powerpoint.create',
    'onedrive.upload',
    'microsoft_todo.create_task',
    'notion.create_page',
    'notion.update_database',
    'airtable.create_record',
    'trello.create_card',
    'asana.create_task',
    'monday.create_item',
    'clickup.create_task',
    'jira.create_issue',
    'linear.create_issue',
    'calendly.create_event',
    'calendly.cancel_event',
    'zoom.create_meeting',
    'zoom.send_invite',
    'typeform.get_responses',
    'google_forms.get_responses',
    'docusign.send_envelope',
    'docusign.get_status',
    'pandadoc.create_document',
    'pandadoc.send_document',
])

INFRASTRUCTURE_ACTIONS: FrozenSet[str] = frozenset([
    'github.create_issue',
    'github.create_pr_comment',
    'github.trigger_workflow',
    'github.create_release',
    'cloudflare.purge_cache',
    'cloudflare.create_dns_record',
    'aws_sns.publish',
    'aws_sqs.send_message',
    'aws_lambda.invoke',
    'aws_ses.send_email',
    'vercel.deploy',
    'vercel.redeploy',
    'netlify.trigger_build',
    'supabase.insert',
    'supabase.update',
    'mongodb.insert',
    'mongodb.update',
    'firebase.set',
    'firebase.push',
    'datadog.create_event',
    'sentry.create_issue',
    'pagerduty.trigger_incident',
])

BUSINESS_ACTIONS: FrozenSet[str] = frozenset([
    'hubspot.create_contact',
    'hubspot.create_deal',
    'salesforce.create_lead',
    'pipedrive.create_deal',
    'zendesk.create_ticket',
    'freshdesk.create_ticket',
    'shopify.create_order',
    'stripe.create_invoice',
    'mailchimp.add_subscriber',
    'klaviyo.add_profile',
    'sendgrid.send_email',
    'segment.track',
    'mixpanel.track',
    'posthog.capture',
    'quickbooks.create_invoice',
    'quickbooks.create_customer',
    'xero.create_invoice',
    'xero.create_contact',
    'woocommerce.create_order',
    'woocommerce.update_order',
    'bigcommerce.create_order',
    'gumroad.get_sales',
    'lemonsqueezy.get_orders',
])

HTTP_ACTIONS: FrozenSet[str] = frozenset([
    'webhook.send',
    'http.request',
])

FLOW_ACTIONS: FrozenSet[str] = frozenset([
    'transform.data',
    'branch.split',
    'loop.foreach',
]) | SEPARATELY_HANDLED_ACTIONS

WORKFLOW_ACTIONS: FrozenSet[str] = (
    STORE_ACTIONS |
    AI_ACTIONS |
    SOCIAL_ACTIONS |
    MESSAGING_ACTIONS |
    PRODUCTIVITY_ACTIONS |
    INFRASTRUCTURE_ACTIONS |
    BUSINESS_ACTIONS |
    HTTP_ACTIONS |
    FLOW_ACTIONS
)

# =============================================================================
# GRAPH
# =============================================================================

TRIGGER_NODE = 'trigger'
ACTION_NODE = 'action'
CONDITION_NODE = 'condition'
DELAY_NODE = 'delay'

BRANCH_YES = 'yes'
BRANCH_NO = 'no'

# =============================================================================
# STATUS EVENTS
# =============================================================================

EVENT_NODE_STATUS = 'node-status'
EVENT_EDGE_ACTIVE = 'edge-active'
EVENT_WORKFLOW_COMPLETE = 'workflow-complete'
