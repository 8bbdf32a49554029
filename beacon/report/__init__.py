"""Report assembly: legacy sections, structured record, dual encoder, builder."""
