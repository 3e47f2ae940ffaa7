import logging
import time
from datetime import date, datetime
from typing import List

import pandas as pd
import plotly.express as px
import streamlit as st

from api_client import ApiError, MoogShipClient
from config import AppConfig, ConfigError, load_config
from export_utils import shipments_to_dataframe, to_csv, users_to_dataframe
from formatting import (
    format_cents,
    format_date,
    format_datetime,
    format_multiplier,
    format_shipment_id,
    get_service_display_name,
    status_label,
    tracking_link_for_shipment,
)
from moogship_models import Shipment, ShipmentStatus, User
from mutations import Notifier, PendingTracker
from pricing_service import PriceMultiplierService
from query_cache import QueryCache
from shipment_service import ShipmentService
from table_view import SelectionStore, SortState, TableView
from tracking import reconstruct_events
from user_service import UserService

logging.basicConfig(level=logging.INFO)

# Page configuration
st.set_page_config(
    page_title="MoogShip Dashboard",
    page_icon="📦",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .main-header {
        text-align: center;
        padding: 1.5rem;
        background: linear-gradient(135deg, #033f63, #28666e);
        color: #fedc97;
        border-radius: 12px;
        margin-bottom: 2rem;
        box-shadow: 0 4px 6px rgba(3, 63, 99, 0.15);
    }

    .refresh-info {
        background-color: rgba(181, 182, 130, 0.15);
        padding: 0.5rem;
        border-radius: 8px;
        margin-bottom: 1rem;
        font-size: 0.85rem;
        color: #7c9885;
        border: 1px solid #b5b682;
    }
</style>
""", unsafe_allow_html=True)

PAGES = ["My Shipments", "All Shipments", "Users", "Pricing Rules"]
ADMIN_PAGES = {"All Shipments", "Users", "Pricing Rules"}

SORTABLE_FIELDS = {
    "Created": "createdAt",
    "Status": "status",
    "Receiver": "receiverName",
    "Country": "receiverCountry",
    "Total": "totalPrice",
}

USER_SORTABLE_FIELDS = {
    "Name": "name",
    "Username": "username",
    "Balance": "balance",
    "Multiplier": "priceMultiplier",
    "Created": "createdAt",
}


def get_config() -> AppConfig:
    """Get configuration from environment."""
    try:
        return load_config()
    except ConfigError as e:
        st.error(f"⚠️ {str(e)}")
        st.stop()


def initialize_session_state():
    """Initialize session state variables."""
    if 'cache' not in st.session_state:
        st.session_state.cache = QueryCache()
    if 'notifier' not in st.session_state:
        st.session_state.notifier = Notifier()
    if 'pending' not in st.session_state:
        st.session_state.pending = PendingTracker()
    if 'last_update' not in st.session_state:
        st.session_state.last_update = None
    if 'auto_refresh_enabled' not in st.session_state:
        st.session_state.auto_refresh_enabled = True
    if 'current_page' not in st.session_state:
        st.session_state.current_page = PAGES[0]
    if 'table_views' not in st.session_state:
        st.session_state.table_views = {}


def get_table_view(name: str, page_size: int, default_field: str = "createdAt",
                   default_order: str = "desc") -> TableView:
    views = st.session_state.table_views
    if name not in views:
        view = TableView(name, page_size)
        if (default_field, default_order) != (view.sort.field, view.sort.order):
            view.sort = SortState(default_field, default_order)
        views[name] = view
    return views[name]


def build_services(config: AppConfig):
    client = MoogShipClient(config.api_url, config.user_id, config.session_id, timeout=config.request_timeout)
    cache = st.session_state.cache
    notifier = st.session_state.notifier
    pending = st.session_state.pending
    return (
        ShipmentService(client, cache, notifier, pending, refresh_seconds=config.refresh_seconds),
        UserService(client, cache, notifier, pending),
        PriceMultiplierService(client, cache, notifier, pending),
    )


def show_notifications():
    """Flush queued notifications as toasts."""
    for notification in st.session_state.notifier.drain():
        icon = "⚠️" if notification.is_error else "✅"
        message = notification.title
        if notification.description:
            message = f"**{notification.title}**: {notification.description}"
        st.toast(message, icon=icon)


def run_action(message: str, action, *args, **kwargs):
    """Run a service action under a spinner, then rerun so every view reads the refreshed cache."""
    with st.spinner(message):
        action(*args, **kwargs)
    st.rerun()


def clear_selection():
    """Drop the selected ids along with the multiselect state that feeds them."""
    SelectionStore(st.session_state).clear()
    for key in ("my", "all"):
        st.session_state.pop(f"select_{key}", None)
    st.session_state.pop("batch_label_url", None)


def shipments_display_df(shipments: List[Shipment], is_admin: bool) -> pd.DataFrame:
    rows = []
    for shipment in shipments:
        row = {
            "ID": format_shipment_id(shipment.id),
            "Created": format_date(shipment.createdAt),
            "Status": status_label(shipment.status),
            "Receiver": shipment.receiverName or "",
            "Destination": f"{shipment.receiverCity or ''}, {shipment.receiverCountry or ''}".strip(", "),
            "Service": get_service_display_name(shipment.selectedService or shipment.serviceLevel),
            "Tracking": shipment.effective_tracking_number or "",
            "Total": format_cents(shipment.totalPrice),
            "Invoice": "📄" if shipment.invoiceFilename else "",
        }
        if is_admin:
            row["Cost"] = format_cents(shipment.originalTotalPrice)
            row["Margin"] = format_cents(shipment.margin_cents)
            row["Multiplier"] = format_multiplier(shipment.appliedMultiplier)
        rows.append(row)
    return pd.DataFrame(rows)


def create_metrics_row(shipments: List[Shipment]):
    """Headline counts by status."""
    counts = {status.value: 0 for status in ShipmentStatus}
    for shipment in shipments:
        if shipment.status in counts:
            counts[shipment.status] += 1

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("Total", len(shipments))
    col2.metric("Pending", counts["pending"])
    col3.metric("Approved", counts["approved"])
    col4.metric("In Transit", counts["in_transit"])
    col5.metric("Delivered", counts["delivered"])


def create_status_chart(shipments: List[Shipment]):
    if not shipments:
        return
    df = pd.DataFrame({"Status": [status_label(s.status) for s in shipments]})
    summary = df["Status"].value_counts().rename_axis("Status").reset_index(name="Shipments")
    fig = px.bar(summary, x="Status", y="Shipments", color="Status",
                 color_discrete_sequence=["#033f63", "#28666e", "#7c9885", "#b5b682", "#fedc97"])
    fig.update_layout(showlegend=False, height=300, margin=dict(l=10, r=10, t=30, b=10))
    st.plotly_chart(fig, use_container_width=True)


def create_sort_controls(view: TableView, fields: dict, key: str):
    labels = list(fields)
    current = next((label for label, name in fields.items() if name == view.sort.field), labels[0])
    col1, col2 = st.columns([3, 1])
    with col1:
        chosen = st.selectbox("Sort by", labels, index=labels.index(current), key=f"sort_{key}")
    with col2:
        arrow = "↑" if view.sort.order == "asc" else "↓"
        if st.button(f"{arrow} {view.sort.order}", key=f"order_{key}"):
            view.toggle_sort(view.sort.field)
            st.rerun()
    if fields[chosen] != view.sort.field:
        view.toggle_sort(fields[chosen])


def create_pager(page, key: str) -> None:
    if page.total_pages <= 1:
        return
    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        if st.button("◀ Previous", disabled=not page.has_prev, key=f"prev_{key}"):
            st.session_state[f"page_{key}"] = page.page - 1
            st.rerun()
    with col2:
        st.caption(f"Page {page.page} of {page.total_pages} ({page.total} shipments)")
    with col3:
        if st.button("Next ▶", disabled=not page.has_next, key=f"next_{key}"):
            st.session_state[f"page_{key}"] = page.page + 1
            st.rerun()


def create_selection(selection: SelectionStore, page_items: List[Shipment], key: str):
    page_ids = [s.id for s in page_items]
    chosen = st.multiselect(
        "Select shipments",
        page_ids,
        default=[i for i in selection.ids if i in page_ids],
        format_func=format_shipment_id,
        key=f"select_{key}",
    )
    selection.select_page([i for i in page_ids if i not in chosen], False)
    selection.select_page(chosen, True)


def create_bulk_actions(service: ShipmentService, selection: SelectionStore, shipments: List[Shipment],
                        is_admin: bool):
    """Batch print, pickup and label purchase for the selected rows."""
    st.markdown(f"**{len(selection)} selected**")
    col1, col2, col3 = st.columns(3)

    with col1:
        if st.button("🖨️ Print labels", key="batch_print"):
            with st.spinner("Merging labels..."):
                result = service.batch_print(selection.ids)
            st.session_state.batch_label_url = result.data if result.ok else None
            st.rerun()
        if st.session_state.get("batch_label_url"):
            st.link_button("Open merged labels", st.session_state.batch_label_url)

    with col2:
        with st.expander("🚚 Request pickup"):
            pickup_date = st.date_input("Pickup date", value=None, min_value=date.today(), key="pickup_date")
            notes = st.text_area("Notes", key="pickup_notes")
            if st.button("Request pickup", key="batch_pickup"):
                with st.spinner("Requesting pickup..."):
                    result = service.batch_pickup(selection.ids, pickup_date, notes)
                if result.ok:
                    clear_selection()
                st.rerun()

    with col3:
        if is_admin and st.button("🏷️ Purchase labels", key="purchase_labels"):
            with st.spinner("Purchasing labels..."):
                result = service.purchase_labels(selection.ids, shipments)
            if result.ok:
                clear_selection()
            st.rerun()


def create_tracking_section(shipment: Shipment):
    events = reconstruct_events(shipment)
    link = tracking_link_for_shipment(shipment)
    if link:
        st.markdown(f"[Track package]({link})")
    if not events:
        st.info("No tracking events available")
        return
    st.dataframe(pd.DataFrame([
        {"Date": format_datetime(e.date), "Status": e.status, "Location": e.location} for e in events
    ]), use_container_width=True, hide_index=True)


def create_shipment_detail(service: ShipmentService, shipment: Shipment, is_admin: bool):
    """Detail panel for one shipment."""
    st.subheader(f"Shipment {format_shipment_id(shipment.id)}")
    col1, col2, col3 = st.columns(3)
    col1.metric("Status", status_label(shipment.status))
    col2.metric("Total", format_cents(shipment.totalPrice))
    col3.metric("Service", get_service_display_name(shipment.selectedService or shipment.serviceLevel))

    tab1, tab2, tab3, tab4 = st.tabs(["📦 Contents", "📍 Tracking", "📄 Documents", "⚙️ Actions"])

    with tab1:
        try:
            items = service.get_items(shipment.id)
        except ApiError as e:
            st.error(f"Could not load package items: {e.message}")
            items = []
        if items:
            st.dataframe(pd.DataFrame([{
                "Name": item.name,
                "Quantity": item.quantity,
                "Price": format_cents(item.price),
                "HS Code": item.hsCode or "",
                "Origin": item.countryOfOrigin or "",
            } for item in items]), use_container_width=True, hide_index=True)
        else:
            st.info(shipment.packageContents or "No package items recorded")

    with tab2:
        create_tracking_section(shipment)
        col1, col2 = st.columns(2)
        if col1.button("Refresh tracking", key=f"refresh_{shipment.id}"):
            run_action("Refreshing tracking...", service.refresh_tracking, shipment.id)
        if col2.button("Request tracking", key=f"request_{shipment.id}"):
            run_action("Sending tracking request...", service.request_tracking, shipment.id)

    with tab3:
        if shipment.invoiceFilename:
            st.write(f"Invoice: {shipment.invoiceFilename}")
            if st.button("Delete invoice", key=f"delete_invoice_{shipment.id}"):
                run_action("Deleting invoice...", service.delete_invoice, shipment.id)
        uploaded = st.file_uploader("Upload invoice (PDF, max 10MB)", type=["pdf"], key=f"invoice_{shipment.id}")
        if uploaded is not None and st.button("Upload", key=f"upload_{shipment.id}"):
            run_action("Uploading invoice...", service.upload_invoice, shipment.id, uploaded.name,
                       uploaded.getvalue(), uploaded.type)

        label_types = ["moogship"] + (["carrier"] if shipment.has_carrier_label else [])
        label_type = st.radio("Label", label_types, horizontal=True, key=f"label_type_{shipment.id}")
        if st.button("Prepare label", key=f"label_{shipment.id}"):
            with st.spinner("Preparing label..."):
                content = service.download_label(shipment, label_type)
            if content:
                st.download_button("📥 Download label", data=content,
                                   file_name=f"label_{format_shipment_id(shipment.id)}.pdf",
                                   mime="application/pdf", key=f"download_{shipment.id}")

    with tab4:
        if shipment.is_pending:
            confirm = st.checkbox("Yes, cancel this shipment", key=f"confirm_cancel_{shipment.id}")
            if st.button("Cancel shipment", disabled=not confirm, key=f"cancel_{shipment.id}"):
                run_action("Cancelling shipment...", service.cancel, shipment)
        else:
            st.caption("Only pending shipments can be cancelled.")

        if is_admin:
            new_price = st.text_input("New price ($)", value=f"{(shipment.totalPrice or 0) / 100:.2f}",
                                      key=f"price_{shipment.id}")
            if st.button("Update price", key=f"update_price_{shipment.id}"):
                run_action("Updating price...", service.update_price, shipment.id, new_price)


def create_shipments_page(service: ShipmentService, config: AppConfig, admin_view: bool):
    key = "all" if admin_view else "my"
    selection = SelectionStore(st.session_state)
    view = get_table_view(f"shipments_{key}", config.page_size)
    page_number = st.session_state.get(f"page_{key}", 1)
    create_sort_controls(view, SORTABLE_FIELDS, key)

    try:
        if admin_view:
            search = st.text_input("Search shipments", key="search_all")
            status = st.selectbox("Status", ["All"] + [s.value for s in ShipmentStatus], key="status_all")
            page = view.server_page(
                lambda p, limit: service.list_paginated(p, limit, search=search or None,
                                                        status=None if status == "All" else status),
                page_number,
            )
            shipments = page.items
        else:
            shipments = service.list_my_shipments()
            page = view.client_page(shipments, page_number)
    except ApiError as e:
        st.error(f"❌ Could not load shipments: {e.message}")
        return

    create_metrics_row(shipments)
    create_status_chart(shipments)

    if not page.items:
        st.info("No shipments found")
        return

    st.dataframe(shipments_display_df(page.items, config.is_admin), use_container_width=True, hide_index=True)
    create_pager(page, key)
    create_selection(selection, page.items, key)
    if len(selection):
        create_bulk_actions(service, selection, shipments, config.is_admin)

    st.download_button(
        label="📥 Download shipments",
        data=to_csv(shipments_to_dataframe(page.items, config.is_admin)),
        file_name=f"shipments_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv",
        mime="text/csv"
    )

    st.divider()
    by_id = {s.id: s for s in page.items}
    selected_id = st.selectbox("Shipment details", list(by_id), format_func=format_shipment_id,
                               key=f"detail_{key}")
    if selected_id is not None:
        create_shipment_detail(service, by_id[selected_id], config.is_admin)


def create_user_actions(service: UserService, user: User):
    col1, col2 = st.columns(2)
    with col1:
        if not user.isApproved and st.button("Approve", key=f"approve_{user.id}"):
            run_action("Approving user...", service.approve, user)
        reason = st.text_input("Rejection reason", key=f"reason_{user.id}")
        if st.button("Reject", key=f"reject_{user.id}"):
            run_action("Rejecting user...", service.reject, user, reason)

        multiplier = st.number_input("Price multiplier", min_value=0.0, value=float(user.priceMultiplier),
                                     step=0.05, key=f"multiplier_{user.id}")
        if st.button("Save multiplier", key=f"save_multiplier_{user.id}"):
            run_action("Saving multiplier...", service.update_price_multiplier, user, multiplier)

        access = "Revoke" if user.canAccessCarrierLabels else "Grant"
        if st.button(f"{access} carrier label access", key=f"carrier_access_{user.id}"):
            run_action("Updating carrier label access...", service.toggle_carrier_label_access, user)
        if user.canAccessReturnSystem:
            if st.button("Revoke return access", key=f"revoke_return_{user.id}"):
                run_action("Revoking return access...", service.revoke_return_access, user)
        elif st.button("Grant return access", key=f"grant_return_{user.id}"):
            run_action("Granting return access...", service.grant_return_access, user)

    with col2:
        amount = st.number_input("Adjust balance ($)", value=0.0, step=10.0, key=f"add_{user.id}")
        description = st.text_input("Description", key=f"description_{user.id}")
        if st.button("Apply adjustment", key=f"apply_add_{user.id}"):
            run_action("Adjusting balance...", service.add_funds, user, int(round(amount * 100)), description)

        balance = st.text_input("Set balance ($)", key=f"set_balance_{user.id}")
        if st.button("Set balance", key=f"apply_set_{user.id}"):
            run_action("Setting balance...", service.set_balance, user, balance, description)

        min_balance = st.text_input("Minimum balance ($, blank for system default)", key=f"min_{user.id}")
        if st.button("Save minimum balance", key=f"apply_min_{user.id}"):
            run_action("Saving minimum balance...", service.set_min_balance, user, min_balance or None)

        confirm = st.checkbox("Confirm deletion", key=f"confirm_delete_{user.id}")
        if st.button("Delete user", disabled=not confirm, key=f"delete_{user.id}"):
            run_action("Deleting user...", service.delete_user, user)


def create_users_page(service: UserService):
    search = st.text_input("Search users", key="search_users")
    try:
        users = service.list_users(search)
    except ApiError as e:
        st.error(f"❌ Could not load users: {e.message}")
        return

    view = get_table_view("users", 10, default_field="name", default_order="asc")
    create_sort_controls(view, USER_SORTABLE_FIELDS, "users")
    page = view.client_page(users, st.session_state.get("page_users", 1))
    if not page.items:
        st.info("No users found")
        return

    st.dataframe(pd.DataFrame([{
        "ID": u.id,
        "Name": u.name,
        "Username": u.username,
        "Email": u.email,
        "Status": u.approval_status,
        "Balance": format_cents(u.balance),
        "Multiplier": format_multiplier(u.priceMultiplier),
    } for u in page.items]), use_container_width=True, hide_index=True)
    create_pager(page, "users")

    st.download_button(
        label="📥 Download users",
        data=to_csv(users_to_dataframe(users)),
        file_name=f"users_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv",
        mime="text/csv"
    )

    by_id = {u.id: u for u in page.items}
    selected_id = st.selectbox("Manage user", list(by_id),
                               format_func=lambda i: f"{by_id[i].name} ({by_id[i].username})")
    if selected_id is not None:
        create_user_actions(service, by_id[selected_id])


def create_pricing_page(service: PriceMultiplierService):
    tab1, tab2 = st.tabs(["🌍 Countries", "⚖️ Weight ranges"])

    with tab1:
        try:
            countries = service.list_countries()
        except ApiError as e:
            st.error(f"❌ Could not load country multipliers: {e.message}")
            countries = []
        for item in countries:
            col1, col2, col3 = st.columns([3, 2, 1])
            col1.write(f"{item.countryName} ({item.countryCode})")
            value = col2.number_input("Multiplier", value=float(item.priceMultiplier), step=0.05,
                                      key=f"country_{item.id}", label_visibility="collapsed")
            if value != item.priceMultiplier and col2.button("Save", key=f"save_country_{item.id}"):
                run_action("Saving country multiplier...", service.update_country, item, multiplier=value)
            if col3.button("🗑️", key=f"delete_country_{item.id}"):
                run_action("Deleting country multiplier...", service.delete_country, item.id)
        with st.form("new_country"):
            code = st.text_input("Country code")
            name = st.text_input("Country name")
            multiplier = st.text_input("Price multiplier")
            if st.form_submit_button("Add country"):
                run_action("Adding country...", service.create_country, code, name, multiplier)

    with tab2:
        try:
            ranges = service.list_weight_ranges()
        except ApiError as e:
            st.error(f"❌ Could not load weight ranges: {e.message}")
            ranges = []
        for item in ranges:
            col1, col2 = st.columns([5, 1])
            upper = f"{item.maxWeight} kg" if item.maxWeight is not None else "and above"
            col1.write(f"{item.rangeName}: {item.minWeight} kg to {upper} → {format_multiplier(item.priceMultiplier)}")
            if col2.button("🗑️", key=f"delete_range_{item.id}"):
                run_action("Deleting weight range...", service.delete_weight_range, item.id)
        with st.form("new_weight_range"):
            range_name = st.text_input("Range name")
            min_weight = st.text_input("Minimum weight (kg)")
            max_weight = st.text_input("Maximum weight (kg, blank for no limit)")
            multiplier = st.text_input("Price multiplier", key="range_multiplier")
            if st.form_submit_button("Add weight range"):
                run_action("Adding weight range...", service.create_weight_range, range_name, min_weight,
                           max_weight or None, multiplier)


def main():
    initialize_session_state()

    st.markdown("""
    <div class="main-header">
        <h1 style="margin: 0; font-size: 2rem;">📦 MoogShip Dashboard</h1>
    </div>
    """, unsafe_allow_html=True)

    config = get_config()
    try:
        shipment_service, user_service, pricing_service = build_services(config)
    except Exception as e:
        st.error(f"Service initialization error: {str(e)}")
        st.stop()

    with st.sidebar:
        pages = [p for p in PAGES if config.is_admin or p not in ADMIN_PAGES]
        page = st.radio("Navigate", pages)
        if page != st.session_state.current_page:
            # Selections do not carry over between views
            clear_selection()
            st.session_state.current_page = page

        st.session_state.auto_refresh_enabled = st.toggle("🔄 Auto-refresh",
                                                          value=st.session_state.auto_refresh_enabled)
        if st.button("Refresh now"):
            st.session_state.cache.clear()
        if st.session_state.last_update:
            st.markdown(f"""
            <div class="refresh-info">
                Last updated: {st.session_state.last_update.strftime('%Y-%m-%d %H:%M:%S')}
            </div>
            """, unsafe_allow_html=True)

    if page == "My Shipments":
        create_shipments_page(shipment_service, config, admin_view=False)
    elif page == "All Shipments":
        create_shipments_page(shipment_service, config, admin_view=True)
    elif page == "Users":
        create_users_page(user_service)
    elif page == "Pricing Rules":
        create_pricing_page(pricing_service)

    st.session_state.last_update = datetime.now()
    show_notifications()

    # Auto-refresh logic
    if st.session_state.auto_refresh_enabled:
        time.sleep(config.refresh_seconds)
        st.session_state.cache.refresh_due()
        st.rerun()


if __name__ == "__main__":
    main()
